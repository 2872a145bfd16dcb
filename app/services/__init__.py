"""Services module for the client data service."""

from app.services.preferences_service import (
    DEFAULT_PREFERENCES,
    PreferencesService,
    get_preferences_service,
    reset_preferences_service,
)

__all__ = ["DEFAULT_PREFERENCES", "PreferencesService", "get_preferences_service", "reset_preferences_service"]
