"""Database module for the preferences store."""

from app.db.session import engine, SessionLocal, get_session_local, init_db
from app.db.models import Base, UserPreference

__all__ = ["engine", "SessionLocal", "get_session_local", "init_db", "Base", "UserPreference"]
