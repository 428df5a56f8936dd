"""Engine settings read from the environment."""

import os

from pydantic import BaseModel


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


class EngineSettings(BaseModel):
    """Tunables for the graph core.

    schema_sample_limit: rows scanned when unioning field names on merge.
    strict_change_detection: compare merged rows by content instead of by
        row count before replacing a table's dataset.
    max_recompute_passes: cap on coalesced recompute passes triggered from
        change listeners.
    event_log_limit: number of change events kept in memory.
    """

    schema_sample_limit: int = 200
    strict_change_detection: bool = False
    max_recompute_passes: int = 16
    event_log_limit: int = 1000

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from DATAFLOW_* environment variables."""
        return cls(
            schema_sample_limit=_env_int("DATAFLOW_SCHEMA_SAMPLE_LIMIT", 200),
            strict_change_detection=_env_bool("DATAFLOW_STRICT_CHANGE_DETECTION", False),
            max_recompute_passes=_env_int("DATAFLOW_MAX_RECOMPUTE_PASSES", 16),
            event_log_limit=_env_int("DATAFLOW_EVENT_LOG_LIMIT", 1000),
        )
