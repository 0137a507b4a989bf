"""Application configuration using Pydantic Settings"""
from dataclasses import dataclass
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class FeatureOptions:
    """User-selectable optional accessory features."""
    motion_detection: bool = True
    doorbell_alerts: bool = True
    streaming_switch: bool = False
    disable_audio: bool = False
    alert_types: tuple = ("motion",)


@dataclass(frozen=True)
class GoogleAuth:
    """The three opaque credential fields copied from a signed-in browser session."""
    issue_token: str
    cookies: str
    api_key: str


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Google account credentials (see README for how to obtain them)
    NEST_ISSUE_TOKEN: Optional[str] = None
    NEST_COOKIES: Optional[str] = None
    NEST_API_KEY: Optional[str] = None

    # Accessory feature options
    MOTION_DETECTION: bool = True
    DOORBELL_ALERTS: bool = True
    STREAMING_SWITCH: bool = False
    DISABLE_AUDIO: bool = False
    # Stored as string to avoid pydantic-settings JSON parsing; use alert_types_list property
    ALERT_TYPES: str = "motion"

    # Polling
    POLL_INTERVAL_SECONDS: int = 10
    SESSION_RENEWAL_SECONDS: int = 3600
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # Accessory cache
    DATABASE_URL: str = "sqlite:///./data/nestcam.db"

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_V1_PREFIX: str = "/api/v1"

    @field_validator('POLL_INTERVAL_SECONDS', 'SESSION_RENEWAL_SECONDS', mode='after')
    @classmethod
    def validate_positive_interval(cls, v: int) -> int:
        """Intervals must be at least one second."""
        if v < 1:
            raise ValueError("interval must be >= 1 second")
        return v

    @property
    def alert_types_list(self) -> List[str]:
        """Parse ALERT_TYPES from comma-separated string"""
        return [t.strip() for t in self.ALERT_TYPES.split(",") if t.strip()]

    @property
    def feature_options(self) -> FeatureOptions:
        return FeatureOptions(
            motion_detection=self.MOTION_DETECTION,
            doorbell_alerts=self.DOORBELL_ALERTS,
            streaming_switch=self.STREAMING_SWITCH,
            disable_audio=self.DISABLE_AUDIO,
            alert_types=tuple(self.alert_types_list),
        )

    @property
    def google_auth(self) -> Optional[GoogleAuth]:
        """Credentials as a unit, or None when any field is unset."""
        if not (self.NEST_ISSUE_TOKEN and self.NEST_COOKIES and self.NEST_API_KEY):
            return None
        return GoogleAuth(
            issue_token=self.NEST_ISSUE_TOKEN,
            cookies=self.NEST_COOKIES,
            api_key=self.NEST_API_KEY,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
