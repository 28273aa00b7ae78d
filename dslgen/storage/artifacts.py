"""Artifact storage for per-request trace files."""

import json
import logging
import shutil
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ArtifactStore:
    """
    Manages file artifacts for generation requests.

    Directory structure:
        traces/<request_id>/
            trace.jsonl
            result.json
    """

    def __init__(self, base_dir: str | Path = "traces"):
        """
        Initialize artifact store.

        Args:
            base_dir: Base directory for all request artifacts
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def get_request_dir(self, request_id: str) -> Path:
        """Get the directory for a specific request."""
        return self.base_dir / request_id

    def create_request_dir(self, request_id: str) -> Path:
        request_dir = self.get_request_dir(request_id)
        request_dir.mkdir(parents=True, exist_ok=True)
        return request_dir

    def append_trace(self, request_id: str, record: dict[str, Any]) -> None:
        """
        Append a trace record to the request's trace file.

        Args:
            request_id: Request identifier
            record: JSON-serializable trace record
        """
        trace_path = self.create_request_dir(request_id) / "trace.jsonl"

        with open(trace_path, "a") as f:
            f.write(json.dumps(record, default=str) + "\n")

    def load_traces(self, request_id: str) -> list[dict[str, Any]]:
        """Load trace records for a request, oldest first."""
        trace_path = self.get_request_dir(request_id) / "trace.jsonl"
        records = []

        if trace_path.exists():
            with open(trace_path) as f:
                for line in f:
                    if line.strip():
                        records.append(json.loads(line))

        return records

    def save_json(self, request_id: str, filename: str, data: Any) -> Path:
        """
        Save arbitrary JSON data.

        Args:
            request_id: Request identifier
            filename: Output filename
            data: Data to serialize

        Returns:
            Path to saved file
        """
        file_path = self.create_request_dir(request_id) / filename

        with open(file_path, "w") as f:
            json.dump(data, f, indent=2, default=str)

        logger.debug(f"Saved {filename} to {file_path}")
        return file_path

    def load_json(self, request_id: str, filename: str) -> Any:
        """Load JSON data."""
        file_path = self.get_request_dir(request_id) / filename

        with open(file_path) as f:
            return json.load(f)

    def delete_request(self, request_id: str) -> bool:
        """
        Delete all artifacts for a request.

        Args:
            request_id: Request identifier

        Returns:
            True if deleted, False if not found
        """
        request_dir = self.get_request_dir(request_id)

        if request_dir.exists():
            shutil.rmtree(request_dir)
            logger.info(f"Deleted artifacts for request {request_id}")
            return True
        return False

    def list_requests(self) -> list[str]:
        """List all request IDs with stored artifacts."""
        requests = []
        if self.base_dir.exists():
            for item in self.base_dir.iterdir():
                if item.is_dir() and not item.name.startswith("."):
                    requests.append(item.name)
        return sorted(requests)
