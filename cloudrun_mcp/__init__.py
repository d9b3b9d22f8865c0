"""
Cloud Run MCP server.

Exposes Cloud Run deploys, service inspection and Cloud Logging queries
as MCP tools, for local (stdio) agents or hosted on GCP itself.
"""

from .config import ConfigurationError, ServerConfig, ToolSettings
from .gcp_logs import LogQueryError, fetch_all_pages, format_logs_for_display, get_logs
from .models import ExecutionMode, LogEntry, LogQueryOptions
from .tool_registry import ToolName, create_tool_filter

__all__ = [
    "ConfigurationError",
    "ServerConfig",
    "ToolSettings",
    "LogQueryError",
    "fetch_all_pages",
    "format_logs_for_display",
    "get_logs",
    "ExecutionMode",
    "LogEntry",
    "LogQueryOptions",
    "ToolName",
    "create_tool_filter",
]
