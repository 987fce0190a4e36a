"""
Configuration settings for the Crataegus location server.

This module handles application configuration using Pydantic settings.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from crataegus.app.models.enums import AltitudeFrame, UserCheckMode


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Crataegus"
    api_version: str = "v1"
    debug: bool = False

    # Database Configuration
    database_path: Path = Path("crataegus.sqlite")
    db_echo: bool = False
    db_busy_timeout_seconds: float = 30.0

    # Ingestion
    user_check_mode: UserCheckMode = UserCheckMode.BOUNDARY
    gpslogger_altitude_frame: AltitudeFrame = AltitudeFrame.MSL
    import_chunk_size: int = Field(1000, ge=1)

    # Geodesy (MSL -> WGS84 ellipsoidal height)
    geoid_source_crs: str = "EPSG:4326+3855"  # WGS 84 + EGM2008 height
    geoid_target_crs: str = "EPSG:4979"  # WGS 84 3D
    geoid_network_enabled: bool = True

    # Backups (snapshots live next to the database unless backup_dir is set)
    backup_dir: Optional[Path] = None
    backup_max_count: Optional[int] = Field(7, ge=1)
    backup_max_age_days: Optional[float] = Field(30.0, gt=0)
    backup_interval_hours: float = Field(24.0, ge=0)

    class Config:
        env_file = ".env"
        env_prefix = "CRATAEGUS_"
        case_sensitive = False


settings = Settings()
