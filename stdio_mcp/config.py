"""
Environment-driven settings.

Values come from the process environment, after loading a ``.env`` file
from the working directory if one exists:

    SERPAPI_KEY               API key for the search_web tool
    SERPAPI_ENDPOINT          Search endpoint (default: SerpAPI JSON search)
    SERPAPI_TIMEOUT           HTTP timeout in seconds (default: 15)
    SERPAPI_MAX_RESULTS       Organic results to include (default: 5)
    STDIO_MCP_STRICT_FRAMING  "1"/"true" to report malformed frames
    STDIO_MCP_LOG_LEVEL       Logging level for entry points (default: INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_SERPAPI_ENDPOINT = "https://serpapi.com/search.json"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    serpapi_key: str | None = None
    serpapi_endpoint: str = DEFAULT_SERPAPI_ENDPOINT
    search_timeout: float = 15.0
    max_results: int = 5
    strict_framing: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from ``env`` (default: os.environ plus .env).

        Malformed numeric values fall back to the defaults with a warning.
        """
        if env is None:
            load_dotenv()
            env = os.environ

        defaults = cls()
        return cls(
            serpapi_key=env.get("SERPAPI_KEY") or None,
            serpapi_endpoint=env.get("SERPAPI_ENDPOINT") or defaults.serpapi_endpoint,
            search_timeout=_number(env, "SERPAPI_TIMEOUT", defaults.search_timeout, float),
            max_results=_number(env, "SERPAPI_MAX_RESULTS", defaults.max_results, int),
            strict_framing=env.get("STDIO_MCP_STRICT_FRAMING", "").strip().lower() in _TRUE_VALUES,
            log_level=(env.get("STDIO_MCP_LOG_LEVEL") or defaults.log_level).upper(),
        )


def _number(env: Mapping[str, str], key: str, default, cast):
    raw = env.get(key)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {key}={raw!r}, using {default}")
        return default
