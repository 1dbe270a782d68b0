"""
Configuration settings for the payment reconciliation service.

All credentials and tunables live on one Settings object. Services and
dependencies receive it through get_settings(); nothing else reads the
environment.
"""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "payrecon"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./payrecon.db"

    # Bearer tokens accepted from the client app (comma-separated)
    CLIENT_API_KEYS: str = ""

    # PayToday shop credentials
    PAYTODAY_SHOP_KEY: str = ""
    PAYTODAY_SHOP_HANDLE: str = ""

    # A pending intent older than this may be superseded by a new one
    PENDING_TTL_MINUTES: int = 30

    # Verify/poll marks payments completed without asking PayToday.
    # Must be switched off (with a real provider wired in) before production.
    ALLOW_UNVERIFIED_COMPLETION: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def client_api_keys(self) -> List[str]:
        return [key.strip() for key in self.CLIENT_API_KEYS.split(",") if key.strip()]


def validate_settings(settings: Settings) -> None:
    """Validate critical settings; raises ValueError listing every issue."""
    issues = []

    if not settings.client_api_keys:
        issues.append("CLIENT_API_KEYS must be set")

    if settings.PENDING_TTL_MINUTES <= 0:
        issues.append("PENDING_TTL_MINUTES must be positive")

    if settings.ENVIRONMENT == "production":
        if settings.ALLOW_UNVERIFIED_COMPLETION:
            issues.append(
                "ALLOW_UNVERIFIED_COMPLETION must be false in production; "
                "verify/poll needs an authoritative PayToday lookup first"
            )
        if not settings.PAYTODAY_SHOP_KEY or not settings.PAYTODAY_SHOP_HANDLE:
            issues.append("PAYTODAY_SHOP_KEY and PAYTODAY_SHOP_HANDLE must be set")

    if issues:
        raise ValueError(f"Configuration issues: {', '.join(issues)}")


@lru_cache
def get_settings() -> Settings:
    return Settings()
