import logging
from collections.abc import Mapping
from typing import Any

import httpx

from voice_dispatch.tools.base import ToolDefinition, define_tool
from voice_dispatch.tools.schema import ToolSchema

logger = logging.getLogger(__name__)

SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
SEARCH_TIMEOUT_SECONDS = 10
MAX_RESULTS = 5


class WebSearchTool:
    """
    Performs a web search using Brave Search API.
    """

    def __init__(self, api_key: str, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._api_key = api_key
        self._transport = transport

    async def __call__(self, query: str, count: int, context: Mapping[str, Any]) -> str:
        query = query.strip()
        if not query:
            return "Error: 'query' parameter is required."

        logger.info(f"Performing Brave web search for query: {query}")

        try:
            async with httpx.AsyncClient(
                timeout=SEARCH_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.get(
                    SEARCH_URL,
                    params={"q": query, "count": count},
                    headers={
                        "X-Subscription-Token": self._api_key,
                        "Accept": "application/json",
                    },
                )
        except httpx.TimeoutException:
            logger.exception("Search request timed out")
            return "Error: Search request timed out."
        except httpx.RequestError as e:
            logger.exception("Search request failed")
            return f"Error: Failed to perform web search: {e}"

        if response.status_code == 401:
            return "Error: Invalid Brave Search API key."
        if response.status_code == 429:
            return "Error: Brave Search rate limit exceeded."
        if not response.is_success:
            return f"Error: Search request failed with status {response.status_code}."

        web_results = response.json().get("web", {}).get("results", [])
        if not web_results:
            return f"No search results found for query: '{query}'."

        formatted_results = []
        for idx, result in enumerate(web_results[:count], start=1):
            title = result.get("title", "")
            url = result.get("url", "")
            description = result.get("description", "")
            formatted_results.append(f"[{idx}] {title}\n{url}\n{description}")

        return f"Web search results for '{query}':\n\n" + "\n\n".join(formatted_results)


def web_search_tool(api_key: str, transport: httpx.AsyncBaseTransport | None = None) -> ToolDefinition:
    schema = (
        ToolSchema()
        .string("query", "The search query to find information on the web.")
        .integer(
            "count",
            "How many results to return.",
            default=MAX_RESULTS,
            minimum=1,
            maximum=MAX_RESULTS,
        )
    )
    return define_tool(
        WebSearchTool(api_key, transport),
        (
            "Search the web for current information based on a query. "
            "Use this for recent events, news, or facts you're unsure about."
        ),
        schema,
    )
