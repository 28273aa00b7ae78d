"""Correlation-keyed structured trace records."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from dslgen.storage.artifacts import ArtifactStore

logger = logging.getLogger(__name__)

TRACE_LOGGER_NAME = "dslgen.trace"
MAX_STRING_LENGTH = 300

_REDACTED_KEYS = {"api_key", "apikey", "token", "password", "secret", "authorization"}
_REDACTED_SUFFIXES = ("_token", "_secret", "_password", "_api_key")

_trace_logger = logging.getLogger(TRACE_LOGGER_NAME)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return lowered in _REDACTED_KEYS or lowered.endswith(_REDACTED_SUFFIXES)


def sanitize(value: Any) -> Any:
    """
    Make a value safe to log.

    Strings longer than 300 characters are truncated and values under
    credential-like keys are replaced with ``[REDACTED]``.

    Args:
        value: Arbitrary JSON-like value

    Returns:
        Sanitized copy
    """
    if isinstance(value, str):
        if len(value) > MAX_STRING_LENGTH:
            return value[:MAX_STRING_LENGTH] + "..."
        return value
    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if _is_sensitive(str(k)) else sanitize(v) for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize(v) for v in value]
    return value


class TraceLogger:
    """
    Emits one JSON line per pipeline stage event.

    Records go to the ``dslgen.trace`` logger and, when an ArtifactStore is
    attached, are appended to ``<output_dir>/<request_id>/trace.jsonl``.
    Persistence failures are logged and never interrupt the pipeline.
    """

    def __init__(self, artifacts: ArtifactStore | None = None, keep_records: bool = False):
        """
        Initialize trace logger.

        Args:
            artifacts: Optional store that persists records per request
            keep_records: Keep emitted records in memory on ``records``
        """
        self.artifacts = artifacts
        self.keep_records = keep_records
        self.records: list[dict[str, Any]] = []

    def log(self, request_id: str | None, stage: str, **data: Any) -> dict[str, Any]:
        """
        Emit a trace record.

        Args:
            request_id: Correlation key of the request
            stage: Dotted stage name, e.g. ``retrieval.result``
            **data: Stage payload

        Returns:
            The sanitized record
        """
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "request_id": request_id,
            "stage": stage,
            **sanitize(data),
        }

        _trace_logger.info(json.dumps(record, default=str))

        if self.keep_records:
            self.records.append(record)

        if self.artifacts is not None and request_id:
            try:
                self.artifacts.append_trace(request_id, record)
            except OSError as e:
                logger.warning(f"Failed to persist trace record for {request_id}: {e}")

        return record

    def stages(self, request_id: str | None = None) -> list[str]:
        """Stage names of kept records, optionally for one request."""
        return [
            r["stage"] for r in self.records if request_id is None or r["request_id"] == request_id
        ]
