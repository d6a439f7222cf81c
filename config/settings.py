"""Configuration management for All Sites Cron."""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence
from dotenv import load_dotenv

load_dotenv()

# Not tunable
LOCK_TTL_SECONDS = 300

# A fan-out where every site times out must fit this many times in the lock TTL
LOCK_TTL_HEADROOM = 4
MIN_CONNECT_TIMEOUT = 0.001

logger = logging.getLogger(__name__)

LOCK_KEY = "all_sites_cron_lock"
LAST_RUN_KEY = "all_sites_cron_last_run_ts"
SITES_CACHE_KEY = "all_sites_cron_sites"
MIGRATION_FLAG_KEY = "all_sites_cron_migrated_legacy_transients"
LEGACY_KEY_PREFIX = "dss_cron_"
KEY_PREFIX = "all_sites_cron_"


def _to_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def resolve_setting(
    names: Sequence[str], default: Any, cast: Callable[[str], Any] = str
) -> Any:
    """Resolve a tunable from an ordered list of environment variable names.

    The first variable that is set and non-empty wins. Current names go
    first and legacy names after them, so a legacy value only applies when
    the current one is absent.

    Args:
        names: Environment variable names, highest precedence first
        default: Value used when none of the names is set
        cast: Conversion applied to the raw string

    Returns:
        The resolved value
    """
    for name in names:
        raw = os.getenv(name)
        if raw is None or raw.strip() == "":
            continue
        if cast is bool:
            return _to_bool(raw)
        return cast(raw.strip())
    return default


def clamp_connect_timeout(
    connect_timeout: float,
    request_timeout: float,
    max_sites: int,
    lock_ttl: int = LOCK_TTL_SECONDS,
) -> float:
    """Cap the connect timeout so a run against an unreachable network stays
    well inside the lock TTL.

    Worst case a run costs `max_sites * (connect_timeout + request_timeout)`,
    which must not exceed `lock_ttl / LOCK_TTL_HEADROOM`.
    """
    per_site = lock_ttl / (LOCK_TTL_HEADROOM * max(1, int(max_sites)))
    ceiling = max(MIN_CONNECT_TIMEOUT, per_site - request_timeout)
    if connect_timeout <= ceiling:
        return connect_timeout

    logger.warning(
        f"Connect timeout {connect_timeout}s lowered to {ceiling:.3f}s: "
        f"{max_sites} sites must fit in 1/{LOCK_TTL_HEADROOM} of the {lock_ttl}s lock TTL"
    )
    return ceiling


@dataclass
class CronConfig:
    """Run coordination tunables."""

    rate_limit_seconds: int = 60
    request_timeout: float = 0.01
    connect_timeout: float = 0.05
    batch_size: int = 50
    max_sites: int = 1000
    lock_ttl_seconds: int = LOCK_TTL_SECONDS
    ssl_verify: bool = False
    home_url: str = ""


@dataclass
class QueueConfig:
    """Optional Redis work queue for deferred runs."""

    enabled: bool = False
    key: str = "all_sites_cron_jobs"
    host: str = "127.0.0.1"
    port: int = 6379
    db: int = 0

    @property
    def url(self) -> str:
        return f"redis://{self.host}:{self.port}/{self.db}"


@dataclass
class RedisConfig:
    """Shared state store holding the lock and the last-run marker."""

    url: str = "redis://localhost:6379/0"


@dataclass
class SiteCatalogConfig:
    """Where the list of network sites comes from."""

    lister: str = "database"  # "database" or "wpcli"
    database_url: str = "sqlite:///wordpress.db"
    table_prefix: str = "wp_"
    site_scheme: str = "https"
    wp_cli_path: str = "wp"
    wp_path: Optional[str] = None


@dataclass
class WebConfig:
    """Web interface configuration."""

    host: str = "127.0.0.1"
    port: int = 3030
    debug: bool = False


class Settings:
    """Main settings manager."""

    def __init__(self):
        self.cron = self._load_cron_config()
        self.queue = self._load_queue_config()
        self.redis = self._load_redis_config()
        self.sites = self._load_site_catalog_config()
        self.web = self._load_web_config()
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    @staticmethod
    def _load_cron_config() -> CronConfig:
        cron = CronConfig(
            rate_limit_seconds=resolve_setting(
                ["ALL_SITES_CRON_RATE_LIMIT_SECONDS", "DSS_CRON_RATE_LIMIT_SECONDS"],
                60,
                int,
            ),
            request_timeout=resolve_setting(
                ["ALL_SITES_CRON_REQUEST_TIMEOUT", "DSS_CRON_REQUEST_TIMEOUT"],
                0.01,
                float,
            ),
            connect_timeout=resolve_setting(
                ["ALL_SITES_CRON_CONNECT_TIMEOUT"], 0.05, float
            ),
            batch_size=resolve_setting(["ALL_SITES_CRON_BATCH_SIZE"], 50, int),
            max_sites=resolve_setting(
                [
                    "ALL_SITES_CRON_MAX_SITES",
                    "ALL_SITES_CRON_NUMBER_OF_SITES",
                    "DSS_CRON_NUMBER_OF_SITES",
                ],
                1000,
                int,
            ),
            ssl_verify=resolve_setting(["ALL_SITES_CRON_SSL_VERIFY"], False, bool),
            home_url=resolve_setting(["ALL_SITES_CRON_HOME_URL"], ""),
        )
        cron.connect_timeout = clamp_connect_timeout(
            cron.connect_timeout, cron.request_timeout, cron.max_sites, cron.lock_ttl_seconds
        )
        return cron

    @staticmethod
    def _load_queue_config() -> QueueConfig:
        return QueueConfig(
            enabled=resolve_setting(["ALL_SITES_CRON_USE_REDIS_QUEUE"], False, bool),
            key=resolve_setting(["ALL_SITES_CRON_REDIS_QUEUE_KEY"], "all_sites_cron_jobs"),
            host=resolve_setting(["ALL_SITES_CRON_REDIS_HOST"], "127.0.0.1"),
            port=resolve_setting(["ALL_SITES_CRON_REDIS_PORT"], 6379, int),
            db=resolve_setting(["ALL_SITES_CRON_REDIS_DB"], 0, int),
        )

    @staticmethod
    def _load_redis_config() -> RedisConfig:
        return RedisConfig(url=os.getenv("REDIS_URL", "redis://localhost:6379/0"))

    @staticmethod
    def _load_site_catalog_config() -> SiteCatalogConfig:
        return SiteCatalogConfig(
            lister=os.getenv("ALL_SITES_CRON_SITE_LISTER", "database").lower(),
            database_url=os.getenv("WP_DATABASE_URL", "sqlite:///wordpress.db"),
            table_prefix=os.getenv("WP_TABLE_PREFIX", "wp_"),
            site_scheme=os.getenv("WP_SITE_SCHEME", "https"),
            wp_cli_path=os.getenv("WP_CLI_PATH", "wp"),
            wp_path=os.getenv("WP_PATH") or None,
        )

    @staticmethod
    def _load_web_config() -> WebConfig:
        return WebConfig(
            host=os.getenv("WEB_HOST", "127.0.0.1"),
            port=int(os.getenv("WEB_PORT", "3030")),
            debug=os.getenv("WEB_DEBUG", "false").lower() == "true",
        )


settings = Settings()
