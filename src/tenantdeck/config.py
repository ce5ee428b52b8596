"""tenantdeck configuration management.

Handles persistent settings stored in ~/.tenantdeck/config.json
"""

import json
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional


# Default configuration values
DEFAULT_API_URL = "http://localhost:8080/api/v1"
DEFAULT_TIMEOUT = 30.0
DEFAULT_THEME = "textual-dark"
DEFAULT_LOG_LEVEL = "WARNING"

CONFIG_ENV_VAR = "TENANTDECK_CONFIG"


@dataclass
class DeckConfig:
    """tenantdeck application configuration."""

    # Control plane
    api_url: str = DEFAULT_API_URL
    token: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    # Appearance
    theme: str = DEFAULT_THEME

    # Form behavior: close the create/edit form as soon as the request is sent
    close_form_on_send: bool = False

    # Logging
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = None

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the path to the config file."""
        override = os.environ.get(CONFIG_ENV_VAR)
        if override:
            return Path(override)
        return Path.home() / ".tenantdeck" / "config.json"

    @classmethod
    def load(cls) -> "DeckConfig":
        """Load configuration from file, or return defaults if not found."""
        config_path = cls.get_config_path()

        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                # Only use known fields to avoid issues with old config versions
                known_fields = {f.name for f in cls.__dataclass_fields__.values()}
                filtered_data = {k: v for k, v in data.items() if k in known_fields}
                return cls(**filtered_data)
            except (json.JSONDecodeError, TypeError, ValueError, AttributeError):
                # Invalid config, return defaults
                pass

        return cls()

    def save(self) -> None:
        """Save configuration to file."""
        config_path = self.get_config_path()

        # Ensure directory exists
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)

    def reset(self) -> None:
        """Reset configuration to defaults."""
        self.api_url = DEFAULT_API_URL
        self.token = None
        self.timeout = DEFAULT_TIMEOUT
        self.theme = DEFAULT_THEME
        self.close_form_on_send = False
        self.log_level = DEFAULT_LOG_LEVEL
        self.log_file = None

    def save_token(self, token: str) -> None:
        """Persist the credential issued at login."""
        self.token = token
        self.save()

    def clear_token(self) -> None:
        """Forget the stored credential (logout)."""
        self.token = None
        self.save()


# Available options for settings
AVAILABLE_THEMES = [
    ("textual-dark", "Textual Dark"),
    ("textual-light", "Textual Light"),
    ("nord", "Nord"),
    ("gruvbox", "Gruvbox"),
    ("dracula", "Dracula"),
    ("tokyo-night", "Tokyo Night"),
]

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
