"""Web API for KeyRouter."""

from fastapi import FastAPI

from keyrouter import __version__


def create_app() -> FastAPI:
    """Build a FastAPI app exposing the KeyRouter routes."""
    from keyrouter.web.routes import keyrouter

    app = FastAPI(title="KeyRouter", version=__version__)
    app.include_router(keyrouter.router, prefix="/api")
    return app
