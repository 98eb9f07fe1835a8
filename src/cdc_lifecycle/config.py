"""Runtime configuration helpers for the capture lifecycle harness."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

DEFAULT_RUNNING_MARKERS = ("is actively running", "is doing work")
DEFAULT_SNAPSHOT_ENDPOINT = (
    "debezium.db2_server:type=connector-metrics,context=snapshot,server=testdb"
)


@dataclass(frozen=True)
class Settings:
    """Immutable container for harness configuration."""

    db_host: str = "localhost"
    db_port: int = 50000
    db_name: str = "testdb"
    db_user: str = "db2inst1"
    db_password: str = "admin"
    db_schema: str = "DB2INST1"
    db_mode: str = "mock"
    capture_schema: str = "ASNCDC"
    capture_server: str = "asncdc"
    running_markers: Tuple[str, ...] = DEFAULT_RUNNING_MARKERS
    start_poll_interval_seconds: float = 1.0
    start_max_attempts: int = 30
    snapshot_poll_interval_seconds: float = 1.0
    snapshot_max_attempts: int = 60
    propagation_delay_seconds: float = 15.0
    metrics_url: str = ""
    metrics_timeout_seconds: float = 5.0
    snapshot_endpoint: str = DEFAULT_SNAPSHOT_ENDPOINT
    snapshot_attribute: str = "SnapshotCompleted"


def _coerce_db_mode(value: Optional[str]) -> str:
    """Translate DB_MODE env var to a supported value."""
    if value is None:
        return "mock"
    normalized = value.strip().lower()
    if normalized in {"mock", "local"}:
        return normalized
    return "mock"


def _split_csv(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(entry.strip() for entry in value.split(",") if entry.strip())


def live_database_enabled() -> bool:
    """Whether live Db2 integration tests should run."""
    return _coerce_db_mode(os.getenv("DB_MODE")) == "local"


def load_settings() -> Settings:
    """Load configuration from the environment (and `.env`)."""
    load_dotenv()
    db_host = os.getenv("DB2_HOST", "localhost")
    db_port = int(os.getenv("DB2_PORT", "50000"))
    db_name = os.getenv("DB2_DATABASE", "testdb")
    db_user = os.getenv("DB2_USER", "db2inst1")
    db_password = os.getenv("DB2_PASSWORD", "admin")
    db_schema = os.getenv("DB2_SCHEMA", "DB2INST1").strip()
    db_mode = _coerce_db_mode(os.getenv("DB_MODE"))

    capture_schema = os.getenv("CDC_CAPTURE_SCHEMA", "ASNCDC").strip()
    capture_server = os.getenv("CDC_CAPTURE_SERVER", "asncdc").strip()
    running_markers = _split_csv(os.getenv("CDC_RUNNING_MARKERS"))

    start_poll_interval_seconds = float(
        os.getenv("CDC_START_POLL_INTERVAL_SECONDS", "1.0")
    )
    start_max_attempts = int(os.getenv("CDC_START_MAX_ATTEMPTS", "30"))
    snapshot_poll_interval_seconds = float(
        os.getenv("CDC_SNAPSHOT_POLL_INTERVAL_SECONDS", "1.0")
    )
    snapshot_max_attempts = int(os.getenv("CDC_SNAPSHOT_MAX_ATTEMPTS", "60"))
    propagation_delay_seconds = float(
        os.getenv("CDC_PROPAGATION_DELAY_SECONDS", "15.0")
    )

    metrics_url = os.getenv("CDC_METRICS_URL", "").strip()
    metrics_timeout_seconds = float(os.getenv("CDC_METRICS_TIMEOUT_SECONDS", "5.0"))
    snapshot_endpoint = os.getenv("CDC_SNAPSHOT_ENDPOINT", DEFAULT_SNAPSHOT_ENDPOINT)
    snapshot_attribute = os.getenv("CDC_SNAPSHOT_ATTRIBUTE", "SnapshotCompleted")

    return Settings(
        db_host=db_host,
        db_port=db_port,
        db_name=db_name,
        db_user=db_user,
        db_password=db_password,
        db_schema=db_schema or "DB2INST1",
        db_mode=db_mode,
        capture_schema=capture_schema or "ASNCDC",
        capture_server=capture_server or "asncdc",
        running_markers=running_markers or DEFAULT_RUNNING_MARKERS,
        start_poll_interval_seconds=start_poll_interval_seconds,
        start_max_attempts=start_max_attempts,
        snapshot_poll_interval_seconds=snapshot_poll_interval_seconds,
        snapshot_max_attempts=snapshot_max_attempts,
        propagation_delay_seconds=propagation_delay_seconds,
        metrics_url=metrics_url,
        metrics_timeout_seconds=metrics_timeout_seconds,
        snapshot_endpoint=snapshot_endpoint.strip(),
        snapshot_attribute=snapshot_attribute.strip(),
    )
