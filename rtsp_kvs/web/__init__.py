"""Web package exposing the status application factory."""

from .app import create_app

__all__ = ["create_app"]
