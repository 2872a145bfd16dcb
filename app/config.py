"""Configuration management from environment variables."""

import os
import logging
from pathlib import Path
from typing import Dict, Optional
from dotenv import load_dotenv

# Load .env file from project root BEFORE reading environment variables
# Try multiple locations: project root, app directory, current working directory
env_paths = [
    Path(__file__).parent.parent / ".env",  # Project root (preferred)
    Path(__file__).parent / ".env",  # app/ directory (fallback)
    Path.cwd() / ".env",  # Current working directory (fallback)
]

for env_path in env_paths:
    if env_path.exists():
        try:
            load_dotenv(env_path, override=False)
            break
        except (PermissionError, IOError):
            # If we can't read the file, continue to next location
            continue

from app.fusion import ResourceDefaults
from app.tables import TABLES

logger = logging.getLogger(__name__)

PATH_OVERRIDE_PREFIX = "EXCEL_FILE_PATH_"


class Config:
    """Application configuration from environment variables."""

    # Server config
    PORT: int = int(os.getenv("PORT", "6030"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info").upper()
    APP_NAME: str = os.getenv("NEXT_PUBLIC_APP_NAME", os.getenv("APP_NAME", "Client Data Management"))

    # Spreadsheet storage
    EXCEL_BASE_PATH: str = os.getenv("EXCEL_BASE_PATH", "./Examples")
    COMPANIES_FILE_PATH: Optional[str] = os.getenv("COMPANIES_FILE_PATH")
    EXCEL_CACHE_TTL: int = int(os.getenv("EXCEL_CACHE_TTL", "300000"))  # milliseconds

    # Host resource defaults (containers/daemons carry no resource columns)
    CONTAINER_DEFAULT_CORES: float = float(os.getenv("CONTAINER_DEFAULT_CORES", "0"))
    CONTAINER_DEFAULT_RAM: float = float(os.getenv("CONTAINER_DEFAULT_RAM", "1"))
    DAEMON_DEFAULT_CORES: float = float(os.getenv("DAEMON_DEFAULT_CORES", "1"))
    DAEMON_DEFAULT_RAM: float = float(os.getenv("DAEMON_DEFAULT_RAM", "2"))

    # Host OS RAM overhead (GB)
    WINDOWS_OS_RAM: float = float(os.getenv("WINDOWS_OS_RAM", "4"))
    OTHER_OS_RAM: float = float(os.getenv("OTHER_OS_RAM", "1"))

    # Auth config
    DISABLE_AUTH: bool = os.getenv("DISABLE_AUTH", "false").lower() == "true"
    AUTH_BASE_URL: str = os.getenv("AUTH_BASE_URL", "")
    AUTH_CACHE_TTL_SECONDS: int = int(os.getenv("AUTH_CACHE_TTL_SECONDS", "60"))

    # Preferences database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./data/preferences.db")

    @classmethod
    def get_resource_defaults(cls) -> ResourceDefaults:
        """Get per-unit resource defaults for host grouping."""
        return ResourceDefaults(
            container_cores=cls.CONTAINER_DEFAULT_CORES,
            container_ram=cls.CONTAINER_DEFAULT_RAM,
            daemon_cores=cls.DAEMON_DEFAULT_CORES,
            daemon_ram=cls.DAEMON_DEFAULT_RAM,
            windows_os_ram=cls.WINDOWS_OS_RAM,
            other_os_ram=cls.OTHER_OS_RAM,
        )

    @classmethod
    def get_path_overrides(cls) -> Dict[str, str]:
        """
        Get explicit backing-file paths per table key.

        EXCEL_FILE_PATH_<KEY> (e.g. EXCEL_FILE_PATH_CORE) wins over the
        legacy COMPANIES_FILE_PATH variable.
        """
        overrides: Dict[str, str] = {}
        if cls.COMPANIES_FILE_PATH:
            overrides["companies"] = cls.COMPANIES_FILE_PATH
        for key in TABLES:
            value = os.getenv(f"{PATH_OVERRIDE_PREFIX}{key.upper()}")
            if value:
                overrides[key] = value
        return overrides

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and fail fast on invalid settings."""
        if cls.EXCEL_CACHE_TTL < 0:
            raise ValueError(f"EXCEL_CACHE_TTL must be >= 0, got {cls.EXCEL_CACHE_TTL}")

        tunables = {
            "CONTAINER_DEFAULT_CORES": cls.CONTAINER_DEFAULT_CORES,
            "CONTAINER_DEFAULT_RAM": cls.CONTAINER_DEFAULT_RAM,
            "DAEMON_DEFAULT_CORES": cls.DAEMON_DEFAULT_CORES,
            "DAEMON_DEFAULT_RAM": cls.DAEMON_DEFAULT_RAM,
            "WINDOWS_OS_RAM": cls.WINDOWS_OS_RAM,
            "OTHER_OS_RAM": cls.OTHER_OS_RAM,
        }
        for name, value in tunables.items():
            if value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")

        if not cls.DISABLE_AUTH and not cls.AUTH_BASE_URL:
            logger.warning("AUTH_BASE_URL is not set - authenticated requests will fail")


# Global config instance
config = Config()
