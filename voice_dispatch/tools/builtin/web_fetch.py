import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from voice_dispatch.tools.base import ToolDefinition, define_tool
from voice_dispatch.tools.schema import ToolSchema

logger = logging.getLogger(__name__)

URL_FETCH_TIMEOUT_SECONDS = 10
MAX_CONTENT_LENGTH = 100_000
DEFAULT_CONTENT_LENGTH = 4_000


def _validate_url(url: str) -> str | None:
    """Return an error message for unsupported URLs, None when the URL is usable."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return f"Unsupported protocol in URL: '{url}'. Only http and https are supported."
    if not parsed.netloc:
        return f"Malformed URL detected: '{url}'."
    return None


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    lines = (line.strip() for line in soup.get_text(separator="\n").splitlines())
    return "\n".join(line for line in lines if line)


class WebFetchTool:
    """
    Fetches a URL and returns its readable text content.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def __call__(self, url: str, max_chars: int, context: Mapping[str, Any]) -> str:
        url = url.strip()
        error = _validate_url(url)
        if error:
            return f"Error: {error}"

        # Convert GitHub blob URLs to raw
        if "github.com" in url and "/blob/" in url:
            url = url.replace("github.com", "raw.githubusercontent.com").replace("/blob/", "/")

        logger.info(f"Fetching URL: {url}")

        try:
            async with httpx.AsyncClient(
                timeout=URL_FETCH_TIMEOUT_SECONDS,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.RequestError as e:
            logger.exception("HTTP request failed")
            return f"Error: Failed to fetch URL '{url}': {e}"

        if response.status_code != 200:
            return f"Error: Request failed with status code {response.status_code}."

        content_type = response.headers.get("content-type", "")
        if "text/html" in content_type.lower() or not content_type:
            text_content = html_to_text(response.text)
        else:
            text_content = response.text.strip()

        return f"Fetched content from {url}:\n\n{text_content[:max_chars]}"


def web_fetch_tool(transport: httpx.AsyncBaseTransport | None = None) -> ToolDefinition:
    schema = (
        ToolSchema()
        .string("url", "A full http:// or https:// URL to fetch.")
        .integer(
            "max_chars",
            "Maximum number of characters of page text to return.",
            default=DEFAULT_CONTENT_LENGTH,
            minimum=100,
            maximum=MAX_CONTENT_LENGTH,
        )
    )
    return define_tool(
        WebFetchTool(transport),
        "Fetch a web page and return its text content. Use when the user names a specific URL.",
        schema,
    )
