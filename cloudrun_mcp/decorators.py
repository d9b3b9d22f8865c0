"""
Decorators for MCP tool handlers.

Provides reusable validation patterns to eliminate code duplication.
"""

from functools import wraps
from typing import Any, Awaitable, Callable

from .config import ToolSettings
from .validation import validate_project_id


Handler = Callable[[dict[str, Any], ToolSettings], Awaitable[str]]


def require_project(func: Handler) -> Handler:
    """
    Decorator to resolve and validate the project argument.

    Fills 'project' from the server default (always the server's own
    project in remote mode), then checks it is a non-empty string.
    Returns error string if invalid, otherwise awaits the handler.

    Usage:
        @require_project
        async def handle_get_logs(arguments: dict[str, Any], settings: ToolSettings) -> str:
            project = arguments["project"]
    """
    @wraps(func)
    async def wrapper(arguments: dict[str, Any], settings: ToolSettings) -> str:
        if settings.is_remote:
            project = settings.default_project_id
        else:
            project = arguments.get("project", settings.default_project_id)

        valid, reason = validate_project_id(project)
        if not valid:
            return f"Error: {reason}"

        return await func({**arguments, "project": project}, settings)

    return wrapper
