"""HTTP API for the decision engine."""

from claxis.web.app import create_app

__all__ = ["create_app"]
