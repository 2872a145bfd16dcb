"""Per-user key/value preferences stored in the preferences database."""

import logging
from typing import Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import UserPreference

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES: Dict[str, str] = {
    "theme": "system",
}


class PreferencesService:
    """CRUD over UserPreference rows, one session per call."""

    def __init__(self, get_db_session: Callable[[], Session]):
        self.get_db_session = get_db_session

    def get(self, user_id: str, key: str) -> Optional[str]:
        """Get one preference value, or None if the user never set it."""
        with self.get_db_session() as db:
            pref = db.query(UserPreference).filter_by(user_id=user_id, key=key).first()
            return pref.value if pref else None

    def get_all(self, user_id: str) -> Dict[str, str]:
        """All preferences stored for a user (defaults are not merged in)."""
        with self.get_db_session() as db:
            prefs = db.query(UserPreference).filter_by(user_id=user_id).all()
            return {pref.key: pref.value for pref in prefs}

    def set(self, user_id: str, key: str, value: str) -> None:
        """Insert or update a preference."""
        with self.get_db_session() as db:
            pref = db.query(UserPreference).filter_by(user_id=user_id, key=key).first()
            if pref is None:
                db.add(UserPreference(user_id=user_id, key=key, value=value))
            else:
                pref.value = value
            try:
                db.commit()
            except IntegrityError:
                # Concurrent insert of the same key; update the winner instead
                db.rollback()
                pref = db.query(UserPreference).filter_by(user_id=user_id, key=key).one()
                pref.value = value
                db.commit()
        logger.debug(f"Set preference {key} for user {user_id}")

    def delete(self, user_id: str, key: str) -> bool:
        """Delete one preference. Returns True if it existed."""
        with self.get_db_session() as db:
            deleted = db.query(UserPreference).filter_by(user_id=user_id, key=key).delete()
            db.commit()
        return deleted > 0

    def delete_all(self, user_id: str) -> int:
        """Delete every preference of a user. Returns the number removed."""
        with self.get_db_session() as db:
            deleted = db.query(UserPreference).filter_by(user_id=user_id).delete()
            db.commit()
        logger.info(f"Deleted {deleted} preferences for user {user_id}")
        return deleted


_preferences_service: Optional[PreferencesService] = None


def get_preferences_service() -> PreferencesService:
    """Get the global PreferencesService instance."""
    global _preferences_service
    if _preferences_service is None:
        from app.db.session import get_session_local

        _preferences_service = PreferencesService(get_db_session=get_session_local())
    return _preferences_service


def reset_preferences_service() -> None:
    """Reset the preferences service singleton (for testing)."""
    global _preferences_service
    _preferences_service = None
