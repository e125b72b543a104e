"""Bundled tool servers, each runnable with ``python -m stdio_mcp.servers.<name>``."""
