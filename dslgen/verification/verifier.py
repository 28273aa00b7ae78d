"""Compile-based verification of generated code."""

import logging
import time
from typing import Any

from dslgen.exceptions import VerifierError
from dslgen.pipeline.trace import TraceLogger
from dslgen.verification.classifier import Rule, parse_structured_errors
from dslgen.verification.client import CompilerClient
from dslgen.verification.models import VerificationResult

logger = logging.getLogger(__name__)


def normalize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Normalize a compiler payload.

    - ``status == "error"`` without an error object gets a synthesized
      "Compilation failed" error
    - a non-empty ``data.errors`` forces ``status = "error"``

    Args:
        payload: Raw compiler result

    Returns:
        New normalized payload
    """
    normalized = dict(payload)
    data = normalized.get("data")
    data_errors = data.get("errors") if isinstance(data, dict) else None

    if normalized.get("status") == "error" and not normalized.get("error"):
        normalized["error"] = {
            "message": "Compilation failed",
            "details": data_errors or "Unknown error",
        }

    if data_errors:
        normalized["status"] = "error"
        normalized["errors"] = {
            "message": "Compilation succeeded but found errors in code",
            "details": data_errors,
        }

    if normalized.get("status") not in ("success", "error"):
        normalized["status"] = "error" if normalized.get("error") else "success"

    return normalized


class Verifier:
    """Verifies code by compiling it as an ephemeral task. Never raises."""

    def __init__(
        self,
        client: CompilerClient,
        trace: TraceLogger | None = None,
        rules: list[Rule] | None = None,
    ):
        self.client = client
        self.trace = trace or TraceLogger()
        self.rules = rules

    async def verify(
        self,
        code: str,
        dialect: str,
        auth_token: str,
        request_id: str | None = None,
    ) -> VerificationResult:
        """
        Compile code and normalize the outcome.

        Args:
            code: Dialect source
            dialect: Dialect identifier
            auth_token: Caller's access token
            request_id: Correlation key for trace records

        Returns:
            VerificationResult; transport failures produce status "error"
            with the failure message
        """
        start_time = time.time()
        self.trace.log(request_id, "verification.start", code_length=len(code), dialect=dialect)

        task_id = None
        try:
            task_id = await self.client.submit(code, dialect, auth_token)
            payload = normalize_payload(await self.client.fetch_result(task_id, auth_token))
        except VerifierError as e:
            logger.error(f"Verification failed: {e}")
            self.trace.log(
                request_id,
                "verification.error",
                error=str(e),
                latency_ms=(time.time() - start_time) * 1000,
            )
            payload = {"status": "error", "error": {"message": str(e)}, "data": None}

        result = VerificationResult(
            status=payload["status"],
            task_id=task_id,
            errors=parse_structured_errors(payload, self.rules) if payload["status"] == "error" else [],
            raw=payload,
        )

        self.trace.log(
            request_id,
            "verification.complete",
            status=result.status,
            task_id=task_id,
            error_count=len(result.errors),
            error_summary="; ".join(e.message for e in result.errors) or None,
            latency_ms=(time.time() - start_time) * 1000,
        )
        return result
