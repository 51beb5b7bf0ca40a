"""
Runtime settings (Pydantic Settings).

Every value can be overridden with a ``REVEND_``-prefixed environment
variable or a ``.env`` file at the project root. Services still accept
explicit constructor arguments, which take precedence over these defaults.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_project_root = Path(__file__).resolve().parent.parent


class TableNames(BaseSettings):
    """Remote table names used by the stores."""
    profiles: str = "profiles"
    companies: str = "companies"
    products: str = "products"
    notifications: str = "notifications"
    user_preferences: str = "user_preferences"
    messages: str = "messages"
    email_logs: str = "email_logs"
    email_templates: str = "email_templates"

    model_config = SettingsConfigDict(env_prefix="REVEND_TABLE_", extra="ignore")


class Settings(BaseSettings):
    data_dir: Path = _project_root / "data"
    public_url: str = "http://localhost:54321"  # base for storage public URLs
    images_bucket: str = "revend-images"
    max_listing_photos: int = 10
    email_from: str = "noreply@revend.co"
    sendgrid_api_key: Optional[str] = None
    sendgrid_url: str = "https://api.sendgrid.com/v3/mail/send"
    tables: TableNames = Field(default_factory=TableNames)

    model_config = SettingsConfigDict(
        env_prefix="REVEND_",
        env_file=_project_root / ".env",
        extra="ignore",
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
