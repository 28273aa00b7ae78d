"""HTTP client for the external compiler service."""

import logging
from typing import Any

import httpx

from dslgen.exceptions import VerifierError

logger = logging.getLogger(__name__)

STORAGE_TYPE_HEADER = "x-graffiticode-storage-type"


class CompilerClient:
    """
    Submits code as tasks and fetches compiled results.

    Tasks are submitted as ephemeral so verification never persists code.
    """

    def __init__(
        self,
        api_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize compiler client.

        Args:
            api_url: Compiler API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.api_url, timeout=self.timeout, transport=self._transport)

    async def submit(self, code: str, dialect: str, auth_token: str) -> str:
        """
        Submit source as an ephemeral task.

        Args:
            code: Dialect source
            dialect: Dialect identifier
            auth_token: Caller's access token

        Returns:
            Task id

        Raises:
            VerifierError: On transport failure or a response without an id
        """
        headers = {"Authorization": auth_token, STORAGE_TYPE_HEADER: "ephemeral"}
        payload = {"task": {"lang": dialect, "code": code}}

        try:
            async with self._client() as client:
                response = await client.post("/task", json=payload, headers=headers)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise VerifierError(f"Task submission failed: {e}") from e

        data = body.get("data") if isinstance(body, dict) else None
        task_id = data.get("id") if isinstance(data, dict) else None
        if not task_id:
            raise VerifierError("Task submission returned no id")

        return str(task_id)

    async def fetch_result(self, task_id: str, auth_token: str) -> dict[str, Any]:
        """
        Fetch the compiled result of a task.

        Args:
            task_id: Id returned by submit
            auth_token: Caller's access token

        Returns:
            Compiler payload with ``status`` and optional ``data`` / ``error``

        Raises:
            VerifierError: On transport failure or a malformed body
        """
        try:
            async with self._client() as client:
                response = await client.get("/data", params={"id": task_id, "access_token": auth_token})
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise VerifierError(f"Fetching task {task_id} failed: {e}") from e

        if not isinstance(body, dict):
            raise VerifierError(f"Unexpected result body for task {task_id}")

        # Results are usually wrapped in a {"data": {...}} envelope
        inner = body.get("data")
        if isinstance(inner, dict) and "status" in inner:
            return inner
        return body
