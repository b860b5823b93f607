"""
Configuration management using environment variables.
Handles all watcher settings with proper validation and defaults.
"""

from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from pydantic import Field, validator
from pydantic_settings import BaseSettings

from utilities.validation import validate_school, validate_webhook_url


class WatcherSettings(BaseSettings):
    """
    Configuration class for timetable watcher settings.
    Uses pydantic BaseSettings for environment variable management.
    """

    # WebUntis Configuration
    untis_school: str = Field(default="", env="UNTIS_SCHOOL")
    untis_username: str = Field(default="", env="UNTIS_USERNAME")
    untis_password: str = Field(default="", env="UNTIS_PASSWORD")
    untis_resource_id: int = Field(default=0, env="UNTIS_RESOURCE_ID")

    # HTTP Configuration
    request_timeout: int = Field(default=30, env="REQUEST_TIMEOUT")
    retry_attempts: int = Field(default=3, env="RETRY_ATTEMPTS")
    retry_delay: float = Field(default=1.0, env="RETRY_DELAY")
    session_max_age_seconds: int = Field(default=600, env="SESSION_MAX_AGE_SECONDS")

    # Notification Configuration
    discord_webhook_url: Optional[str] = Field(default=None, env="DISCORD_WEBHOOK_URL")
    notifications_per_second: float = Field(default=0.5, env="NOTIFICATIONS_PER_SECOND")
    min_severity_for_notify: str = Field(default="low", env="MIN_SEVERITY_FOR_NOTIFY")

    # Poll Cycle Configuration
    timezone: str = Field(default="Europe/Berlin", env="TIMEZONE")
    rollover_hour: int = Field(default=18, env="ROLLOVER_HOUR")
    max_consecutive_failures: int = Field(default=5, env="MAX_CONSECUTIVE_FAILURES")
    active_poll_interval: int = Field(default=120, env="ACTIVE_POLL_INTERVAL")
    idle_poll_interval: int = Field(default=900, env="IDLE_POLL_INTERVAL")
    active_start_hour: int = Field(default=6, env="ACTIVE_START_HOUR")
    active_end_hour: int = Field(default=18, env="ACTIVE_END_HOUR")
    test_poll_interval: int = Field(default=30, env="TEST_POLL_INTERVAL")

    # Logging Configuration
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="console", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default="logs/watcher.log", env="LOG_FILE")

    # Development/Testing
    debug: bool = Field(default=False, env="DEBUG")

    @validator('untis_school')
    def validate_school_name(cls, v):
        """School becomes a subdomain, so only lowercase letters and dashes."""
        if v:
            validate_school(v)
        return v

    @validator('discord_webhook_url')
    def validate_webhook(cls, v):
        """Empty means log-only notifications."""
        if not v:
            return None
        return validate_webhook_url(v)

    @validator('request_timeout')
    def validate_timeout(cls, v):
        """Ensure timeout is reasonable."""
        if v < 5 or v > 300:
            raise ValueError('request_timeout must be between 5 and 300 seconds')
        return v

    @validator('retry_attempts')
    def validate_retry_attempts(cls, v):
        """Ensure retry attempts is reasonable."""
        if v < 0 or v > 10:
            raise ValueError('retry_attempts must be between 0 and 10')
        return v

    @validator('session_max_age_seconds')
    def validate_session_max_age(cls, v):
        """Tokens are short-lived on the backend side."""
        if v < 30 or v > 86400:
            raise ValueError('session_max_age_seconds must be between 30 and 86400')
        return v

    @validator('notifications_per_second')
    def validate_rate_limit(cls, v):
        """Ensure rate limit is reasonable."""
        if v < 0.1 or v > 10:
            raise ValueError('notifications_per_second must be between 0.1 and 10')
        return v

    @validator('min_severity_for_notify')
    def validate_min_severity(cls, v):
        valid_severities = ['low', 'medium', 'high']
        if v.lower() not in valid_severities:
            raise ValueError(f'min_severity_for_notify must be one of: {valid_severities}')
        return v.lower()

    @validator('timezone')
    def validate_timezone(cls, v):
        """Ensure the timezone is a known IANA name."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f'unknown timezone: {v}')
        return v

    @validator('rollover_hour', 'active_start_hour', 'active_end_hour')
    def validate_hour(cls, v):
        if v < 0 or v > 24:
            raise ValueError('hours must be between 0 and 24')
        return v

    @validator('max_consecutive_failures')
    def validate_max_failures(cls, v):
        if v < 1:
            raise ValueError('max_consecutive_failures must be at least 1')
        return v

    @validator('active_poll_interval', 'idle_poll_interval', 'test_poll_interval')
    def validate_interval(cls, v):
        """Ensure we do not hammer the backend."""
        if v < 10:
            raise ValueError('poll intervals must be at least 10 seconds')
        return v

    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from .env

    def get_timezone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def missing_credentials(self) -> List[str]:
        """Names of required WebUntis settings that are not set."""
        required = {
            "UNTIS_SCHOOL": self.untis_school,
            "UNTIS_USERNAME": self.untis_username,
            "UNTIS_PASSWORD": self.untis_password,
            "UNTIS_RESOURCE_ID": self.untis_resource_id,
        }
        return [name for name, value in required.items() if not value]

    def get_user_agent(self) -> str:
        """Get user agent string for requests."""
        return "untis-watch/1.0"

    def get_headers(self) -> dict:
        """Get default headers for HTTP requests."""
        return {
            "User-Agent": self.get_user_agent(),
            "Accept": "application/json",
        }


# Global configuration instance
config = WatcherSettings()
