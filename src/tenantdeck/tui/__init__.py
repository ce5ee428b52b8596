"""Terminal dashboard for tenantdeck."""

from .app import DeckApp

__all__ = ["DeckApp"]
