from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./crowdsec-dashboard.db"

    # CrowdSec Local API
    lapi_url: Optional[str] = None
    lapi_bouncer_api_token: Optional[str] = None
    lapi_machine_id: Optional[str] = None
    lapi_machine_password: Optional[str] = None
    lapi_origins: str = "crowdsec,cscli"
    lapi_timeout: float = 10.0  # seconds, per HTTP call

    # Sync
    lapi_poll_interval: int = 60  # seconds
    decision_retention_count: Optional[int] = None  # unset = keep everything

    # GeoIP fallback for hosts without alert enrichment
    geoip_db_path: str = "/app/data/GeoLite2-Country.mmdb"

    # Application
    app_name: str = "CrowdSec Dashboard"
    debug: bool = False
    log_level: str = "INFO"

    # Logging
    log_dir: Optional[str] = None
    log_json: bool = False  # Enable JSON logging for production
    enable_request_logging: bool = True

    # CORS (comma-separated)
    cors_origins: str = ""

    # Dashboard API keys (comma-separated, checked when require_api_key is set)
    require_api_key: bool = False
    api_keys: str = ""

    @field_validator(
        "lapi_url",
        "lapi_bouncer_api_token",
        "lapi_machine_id",
        "lapi_machine_password",
        "decision_retention_count",
        "log_dir",
        mode="before",
    )
    @classmethod
    def empty_as_unset(cls, v):
        """Strip wrapping quotes and treat empty strings as unset"""
        if isinstance(v, str):
            v = v.strip()
            if len(v) >= 2 and v[0] == v[-1] == '"':
                v = v[1:-1]
            if v == "":
                return None
        return v

    @field_validator("lapi_poll_interval")
    @classmethod
    def check_poll_interval(cls, v):
        if v <= 0:
            raise ValueError("LAPI_POLL_INTERVAL must be positive")
        return v

    @field_validator("decision_retention_count")
    @classmethod
    def check_retention_count(cls, v):
        if v is not None and v <= 0:
            raise ValueError("DECISION_RETENTION_COUNT must be positive")
        return v

    @property
    def lapi_configured(self) -> bool:
        """Polling needs at least the URL and the bouncer key"""
        return bool(self.lapi_url and self.lapi_bouncer_api_token)

    @property
    def api_key_list(self) -> List[str]:
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
