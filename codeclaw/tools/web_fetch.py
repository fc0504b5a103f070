"""Web fetch tool for retrieving web page content."""

import re
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from codeclaw.config import WebFetchToolConfig
from codeclaw.logging import get_logger
from codeclaw.tools.registry import Tool, ToolResult

log = get_logger(__name__)


class WebFetchTool(Tool):
    """Fetch web page content."""

    name = "web_fetch"
    description = "Fetch a URL and return its readable text content."
    timeout_seconds = 45.0
    parameters = {
        "type": "object",
        "properties": {
            "url": {
                "type": "string",
                "description": "URL to fetch (http or https)",
            },
            "max_chars": {
                "type": "number",
                "description": "Maximum characters to return (default from config)",
            },
        },
        "required": ["url"],
    }

    def __init__(
        self,
        config: WebFetchToolConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or WebFetchToolConfig()
        self.client = client or httpx.AsyncClient(
            timeout=30.0,
            follow_redirects=True,
            headers={"User-Agent": "CodeClaw/0.1.0 (Web Fetch Tool)"},
        )

    async def execute(
        self,
        url: str,
        max_chars: int | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Fetch a web page and extract readable text via BeautifulSoup.

        Args:
            url: URL to fetch
            max_chars: Max characters to return

        Returns:
            ToolResult with extracted readable text
        """
        parsed = urlparse(str(url or ""))
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            return ToolResult.error(f"Error: Invalid URL: {url}")

        effective_max_chars = int(self.config.max_chars if max_chars is None else max_chars)
        effective_max_chars = max(1, effective_max_chars)

        try:
            log.info("Fetching URL", url=url)
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.error("HTTP fetch failed", url=url, error=str(e))
            return ToolResult.error(f"Error: HTTP error: {e}")

        content_type = response.headers.get("content-type", "")
        if "html" in content_type or not content_type:
            content = self._extract_readable_text(response.text, base_url=str(response.url))
        else:
            content = response.text

        if len(content) > effective_max_chars:
            content = content[:effective_max_chars] + "\n... [truncated]"

        output = f"[URL: {response.url}]\n"
        output += f"[Status: {response.status_code}]\n\n"
        output += content
        return ToolResult.text(output)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    def _extract_readable_text(self, html: str, base_url: str | None = None) -> str:
        """Extract human-readable text from raw HTML."""
        soup = BeautifulSoup(html, "html.parser")

        for tag in soup(["script", "style", "noscript", "template", "svg", "canvas"]):
            tag.decompose()

        # Keep links so later turns can cite sources.
        for anchor in soup.find_all("a"):
            href = (anchor.get("href") or "").strip()
            label = anchor.get_text(" ", strip=True)
            if not href:
                continue
            absolute = urljoin(base_url, href) if base_url else href
            anchor.replace_with(f"{label} ({absolute})" if label else absolute)

        title = ""
        if soup.title and soup.title.string:
            title = soup.title.string.strip()

        lines = []
        for line in soup.get_text(separator="\n").splitlines():
            cleaned = re.sub(r"\s+", " ", line).strip()
            if cleaned:
                lines.append(cleaned)

        text = "\n".join(lines)
        if title and not text.startswith(title):
            return f"{title}\n\n{text}" if text else title
        return text
