"""Engine configuration."""

import json
import os
import socket
from dataclasses import dataclass, field
from pathlib import Path

from .services.retry import RetryConfig

DEFAULT_DATA_DIR = Path.home() / ".trainstate-backup"
CONFIG_FILENAME = "config.json"


def get_data_dir() -> Path:
    """Get the data directory, honouring ``TRAINSTATE_DATA_DIR``."""
    override = os.environ.get("TRAINSTATE_DATA_DIR")
    return Path(override) if override else DEFAULT_DATA_DIR


@dataclass
class BackupConfig:
    """Tunables for the batch writer, network gate and pruner."""

    max_batch_size: int = 400  # remote store ceiling per request
    max_concurrency: int = 4
    retry: RetryConfig = field(default_factory=RetryConfig)
    device_name: str = field(default_factory=socket.gethostname)
    record_store_path: str | None = None
    probe_host: str | None = None
    probe_port: int = 443
    metered: bool = False
    orphan_grace_hours: float = 24.0

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "max_batch_size": self.max_batch_size,
            "max_concurrency": self.max_concurrency,
            "retry": {
                "max_attempts": self.retry.max_attempts,
                "initial_delay_ms": self.retry.initial_delay_ms,
                "max_delay_ms": self.retry.max_delay_ms,
                "backoff_multiplier": self.retry.backoff_multiplier,
                "jitter": self.retry.jitter,
            },
            "device_name": self.device_name,
            "record_store_path": self.record_store_path,
            "probe_host": self.probe_host,
            "probe_port": self.probe_port,
            "metered": self.metered,
            "orphan_grace_hours": self.orphan_grace_hours,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BackupConfig":
        """Create from dictionary, falling back to defaults for missing keys."""
        defaults = cls()
        retry_data = data.get("retry", {})
        retry = RetryConfig(
            max_attempts=retry_data.get("max_attempts", defaults.retry.max_attempts),
            initial_delay_ms=retry_data.get("initial_delay_ms", defaults.retry.initial_delay_ms),
            max_delay_ms=retry_data.get("max_delay_ms", defaults.retry.max_delay_ms),
            backoff_multiplier=retry_data.get(
                "backoff_multiplier", defaults.retry.backoff_multiplier
            ),
            jitter=retry_data.get("jitter", defaults.retry.jitter),
        )
        max_batch_size = int(data.get("max_batch_size", defaults.max_batch_size))
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        return cls(
            max_batch_size=max_batch_size,
            max_concurrency=max(1, int(data.get("max_concurrency", defaults.max_concurrency))),
            retry=retry,
            device_name=data.get("device_name") or defaults.device_name,
            record_store_path=data.get("record_store_path"),
            probe_host=data.get("probe_host"),
            probe_port=int(data.get("probe_port", defaults.probe_port)),
            metered=bool(data.get("metered", False)),
            orphan_grace_hours=float(data.get("orphan_grace_hours", defaults.orphan_grace_hours)),
        )


def load_config(data_dir: Path | None = None) -> BackupConfig:
    """Load ``config.json`` from the data directory, or return defaults."""
    path = (data_dir or get_data_dir()) / CONFIG_FILENAME
    if not path.exists():
        return BackupConfig()
    with open(path) as f:
        return BackupConfig.from_dict(json.load(f))


def save_config(config: BackupConfig, data_dir: Path | None = None) -> Path:
    """Write the configuration to ``config.json`` in the data directory."""
    data_dir = data_dir or get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    path = data_dir / CONFIG_FILENAME
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
    return path
