"""Routes package for the KeyRouter web API."""

from keyrouter.web.routes import keyrouter

__all__ = ["keyrouter"]
