"""
Web Search MCP Tool Server (SerpAPI).

Exposes one tool, ``search_web``, that queries Google through SerpAPI and
returns the top organic results as text. Every failure (missing
SERPAPI_KEY, HTTP error, bad JSON, API-reported error) becomes an
error-flagged result; the server process never dies because of a search.

Launch:
    SERPAPI_KEY=... python -m stdio_mcp.servers.web_search
"""

import logging
from typing import Any

import requests

from stdio_mcp.config import Settings
from stdio_mcp.server import StdioToolServer, ToolHandler, ToolResult

logger = logging.getLogger(__name__)


class SearchWebTool(ToolHandler):
    name = "search_web"
    description = (
        "Search the web using Google via SerpAPI. Use this tool when you need current "
        "information, recent events, or information not available in the uploaded "
        "document. The query should be a clear search string."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "The search query to execute",
            },
        },
        "required": ["query"],
    }

    def __init__(self, settings: Settings | None = None, session: requests.Session | None = None):
        self.settings = settings or Settings.from_env()
        self._session = session or requests.Session()

    def handle(self, arguments: dict) -> ToolResult:
        query = arguments["query"]

        if not self.settings.serpapi_key:
            logger.error("SERPAPI_KEY not found in environment variables")
            return ToolResult.error(
                "Web search encountered an error: SERPAPI_KEY not found in environment variables"
            )

        try:
            response = self._session.get(
                self.settings.serpapi_endpoint,
                params={"q": query, "api_key": self.settings.serpapi_key},
                timeout=self.settings.search_timeout,
            )
            response.raise_for_status()
            results = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error in web search: {e}")
            return ToolResult.error(f"Web search encountered an error: {e}")

        if not isinstance(results, dict):
            return ToolResult.error("Web search encountered an error: unexpected response format")
        if results.get("error"):
            logger.error(f"SerpAPI error: {results['error']}")
            return ToolResult.error(f"Web search encountered an error: {results['error']}")

        return ToolResult.text(format_results(query, results, self.settings.max_results))


def format_results(query: str, results: dict[str, Any], max_results: int = 5) -> str:
    """Render a SerpAPI response as plain text."""
    lines = [f"Web Search Results for: {query}", ""]

    organic = results.get("organic_results") or []
    if organic:
        lines.append("Top Results:")
        for index, item in enumerate(organic[:max_results], start=1):
            lines.append(f"{index}. {item.get('title', '(untitled)')}")
            lines.append(f"   Source: {item.get('link', '')}")
            if item.get("snippet"):
                lines.append(f"   {item['snippet']}")
            lines.append("")

    answer_box = results.get("answer_box") or {}
    if answer_box.get("answer"):
        lines.append(f"Direct Answer: {answer_box['answer']}")
        if answer_box.get("link"):
            lines.append(f"Source: {answer_box['link']}")
        lines.append("")

    if not organic and not answer_box.get("answer"):
        lines.append("No results found.")

    return "\n".join(lines)


def build_server(settings: Settings | None = None) -> StdioToolServer:
    server = StdioToolServer("serpapi-search-server")
    server.register(SearchWebTool(settings))
    return server


if __name__ == "__main__":
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")
    build_server(settings).run()
