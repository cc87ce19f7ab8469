"""Routes package for the Claxis HTTP API."""

from claxis.web.routes import decisions, settings, usage

__all__ = ["decisions", "settings", "usage"]
