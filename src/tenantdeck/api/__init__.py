"""Local control plane for development and tests."""

from .main import app, create_app

__all__ = ["app", "create_app"]
