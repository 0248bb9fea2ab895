"""Configuration management using Pydantic settings."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables (MAPSKETCH_*)."""

    model_config = SettingsConfigDict(
        env_prefix="MAPSKETCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "mapsketch"
    debug: bool = False

    # File service (server side)
    host: str = "127.0.0.1"
    port: int = 3000
    storage_dir: Path = Path("./data/files")
    admin_roles: list[str] = ["admin", "teacher"]
    cors_origins: list[str] = ["*"]

    # File service (client side)
    api_url: str = "http://127.0.0.1:3000"
    request_timeout: float = 30.0

    # Drawing
    hit_tolerance_m: float = 15.0          # delete/select radius around markers and lines
    min_save_interval_ms: int = 2000       # auto-save debounce window


settings = Settings()
