"""Per-dialect instruction and starter-template lookup."""

import logging
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)


class DialectInstructions:
    """
    Looks up dialect assets and caches them for the object's lifetime.

    Instructions come from ``<corpus_dir>/l<dialect>-instructions.md`` when
    present, otherwise from the language server's ``instructions.md`` asset.
    Failed lookups cache the empty string so they are not retried.
    """

    def __init__(
        self,
        corpus_dir: str | Path = "training",
        language_server_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize instruction lookup.

        Args:
            corpus_dir: Directory holding local instruction files
            language_server_url: Base URL serving ``/L<dialect>/<asset>``
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.corpus_dir = Path(corpus_dir)
        self.language_server_url = language_server_url.rstrip("/") if language_server_url else None
        self.timeout = timeout
        self._transport = transport

        self._instructions: dict[str, str] = {}
        self._templates: dict[str, str] = {}

    async def _fetch_asset(self, dialect: str, asset: str) -> str:
        if not self.language_server_url:
            return ""

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(f"{self.language_server_url}/L{dialect}/{asset}")
            response.raise_for_status()
            return response.text

    async def get_instructions(self, dialect: str) -> str:
        """
        Get the instruction text for a dialect.

        Args:
            dialect: Dialect identifier

        Returns:
            Instruction markdown, empty when none is available
        """
        if dialect in self._instructions:
            return self._instructions[dialect]

        path = self.corpus_dir / f"l{dialect}-instructions.md"
        text = ""

        if path.exists():
            text = path.read_text(encoding="utf-8").strip()
            logger.info(f"Found dialect instructions for L{dialect}")
        else:
            try:
                text = (await self._fetch_asset(dialect, "instructions.md")).strip()
            except httpx.HTTPError as e:
                logger.warning(f"Failed to fetch instructions for L{dialect}: {e}")

        self._instructions[dialect] = text
        return text

    async def get_template(self, dialect: str) -> str:
        """
        Get the starter template source for a dialect.

        Args:
            dialect: Dialect identifier

        Returns:
            Template source, empty when the language server has none
        """
        if dialect in self._templates:
            return self._templates[dialect]

        try:
            text = await self._fetch_asset(dialect, "template.gc")
        except httpx.HTTPError as e:
            logger.warning(f"Template not found for L{dialect}: {e}")
            text = ""

        self._templates[dialect] = text
        return text
