from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from croniter import croniter
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_ID_MAP_PATH = Path(__file__).parent / "data" / "a1_channel_map.json"


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    data_dir: str = "./data"
    cache_database_name: str = "cache.db"
    epg_timezone: str = "Europe/Vienna"
    map_channel_ids_to_a1: bool = True
    channel_id_map_path: str = str(DEFAULT_CHANNEL_ID_MAP_PATH)
    excluded_channel_prefix: str = "Sky"

    staleness_threshold_sec: int = 43200  # 12 hours
    lock_ttl_sec: int = 3600  # 1 hour
    cache_ttl_sec: int = 172800  # 48 hours
    upstream_timeout_sec: float = 30.0
    fetch_concurrency: int = 4

    refresh_cron: str = "15 * * * *"
    scheduler_enabled: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir")
    @classmethod
    def validate_data_dir(cls, value: str) -> str:
        """Validate the data directory is accessible."""
        path = Path(value)
        try:
            (path / "cache").mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access data directory '{value}': {exc}") from exc

    @field_validator("epg_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Validate timezone is a known IANA zone."""
        try:
            ZoneInfo(value)
            return value
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Invalid timezone '{value}'") from exc

    @field_validator("channel_id_map_path")
    @classmethod
    def validate_channel_id_map_path(cls, value: str) -> str:
        if not Path(value).is_file():
            raise ValueError(f"Channel id map not found: {value}")
        return value

    @field_validator(
        "staleness_threshold_sec",
        "lock_ttl_sec",
        "cache_ttl_sec",
        "fetch_concurrency",
    )
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure integer settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("upstream_timeout_sec")
    @classmethod
    def validate_upstream_timeout(cls, value: float) -> float:
        """Validate per-request upstream timeout (seconds)."""
        if value <= 0:
            raise ValueError("upstream_timeout_sec must be > 0")
        return value

    @field_validator("refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @property
    def cache_database_path(self) -> Path:
        return Path(self.data_dir) / "cache" / self.cache_database_name

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Data directory: %s", self.data_dir)
        logger.info("  Cache database: %s", self.cache_database_path)
        logger.info("  Timezone: %s", self.epg_timezone)
        logger.info(
            "  A1 channel id mapping: %s",
            self.channel_id_map_path if self.map_channel_ids_to_a1 else "disabled",
        )
        logger.info("  Excluded channel prefix: %r", self.excluded_channel_prefix)
        logger.info("  Staleness threshold: %ss", self.staleness_threshold_sec)
        logger.info("  Lock TTL: %ss", self.lock_ttl_sec)
        logger.info("  Cache TTL: %ss", self.cache_ttl_sec)
        logger.info("  Upstream timeout: %.1fs", self.upstream_timeout_sec)
        logger.info("  Fetch concurrency: %s", self.fetch_concurrency)
        logger.info(
            "  Refresh schedule: %s",
            self.refresh_cron if self.scheduler_enabled else "disabled",
        )


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
