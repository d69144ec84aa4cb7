"""Strata runtime configuration and settings."""
import os
from dataclasses import dataclass
from typing import Optional

from strata.core.errors import ConfigurationError

POOL_NAME_PREFIX = "strata-"


@dataclass
class StrataConfig:
    """Runtime configuration read from the process environment.

    Attributes:
        namespace: Namespace every controller operates in (required)
        pool_name_seed: Per-node pool seed; the pool engine cannot run without it
        resync_interval: Seconds between full resyncs of every object (default: 30)
        workers: Reconcile workers per controller (default: 2)
        store_path: Location of the JSON object store
        events_path: JSON-lines journal of recorded events
        dev_dir: Directory scanned for importable pools
        cache_file: Pool cache file used for create and import
        log_file: Optional log file override
    """

    namespace: str = ""
    pool_name_seed: str = ""
    resync_interval: float = 30.0
    workers: int = 2
    store_path: str = ".strata/store.json"
    events_path: str = ".strata/events.jsonl"
    dev_dir: str = "/dev/disk/by-id"
    cache_file: str = "/var/lib/strata/pool.cache"
    log_file: Optional[str] = None

    @property
    def pool_name(self) -> str:
        """Canonical on-disk pool name for this node."""
        return POOL_NAME_PREFIX + self.pool_name_seed

    @classmethod
    def from_env(cls) -> "StrataConfig":
        """Create config from environment variables.

        Environment variables:
            STRATA_NAMESPACE: Operating namespace
            STRATA_POOL_NAME: Pool-name seed for the per-node pool engine
            STRATA_RESYNC_INTERVAL: Resync interval in seconds
            STRATA_WORKERS: Worker threads per controller
            STRATA_STORE: JSON store path
            STRATA_EVENTS: Event journal path
            STRATA_DEV_DIR: Device directory for pool import scans
            STRATA_CACHE_FILE: Pool cache file
            STRATA_LOG_FILE: Log file path
        """
        return cls(
            namespace=os.getenv("STRATA_NAMESPACE", cls.namespace),
            pool_name_seed=os.getenv("STRATA_POOL_NAME", cls.pool_name_seed),
            resync_interval=float(
                os.getenv("STRATA_RESYNC_INTERVAL", cls.resync_interval)
            ),
            workers=int(os.getenv("STRATA_WORKERS", cls.workers)),
            store_path=os.getenv("STRATA_STORE", cls.store_path),
            events_path=os.getenv("STRATA_EVENTS", cls.events_path),
            dev_dir=os.getenv("STRATA_DEV_DIR", cls.dev_dir),
            cache_file=os.getenv("STRATA_CACHE_FILE", cls.cache_file),
            log_file=os.getenv("STRATA_LOG_FILE"),
        )

    def validate(self, require_pool: bool = False) -> "StrataConfig":
        """Raise ConfigurationError for settings the process cannot run without."""
        if not self.namespace:
            raise ConfigurationError("STRATA_NAMESPACE is not set")
        if require_pool and not self.pool_name_seed:
            raise ConfigurationError("STRATA_POOL_NAME is not set")
        if self.workers < 1:
            raise ConfigurationError(f"STRATA_WORKERS must be positive, got {self.workers}")
        if self.resync_interval <= 0:
            raise ConfigurationError(
                f"STRATA_RESYNC_INTERVAL must be positive, got {self.resync_interval}"
            )
        return self


_config: Optional[StrataConfig] = None


def get_config() -> StrataConfig:
    """Get the global Strata configuration, creating it from the environment."""
    global _config
    if _config is None:
        _config = StrataConfig.from_env()
    return _config


def set_config(config: Optional[StrataConfig]):
    """Set (or reset with None) the global Strata configuration."""
    global _config
    _config = config
