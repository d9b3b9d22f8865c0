"""
Tool catalog and tool filtering.

The catalog is a closed set of tool names per execution mode. The filter
decides, per tool name, whether the tool is registered on the MCP server.
"""

from enum import Enum
from typing import Callable, Iterable, Optional, Union

from .config import ConfigurationError
from .models import ExecutionMode


class ToolName(str, Enum):
    """Every tool this server can expose."""
    LIST_PROJECTS = "list_projects"
    CREATE_PROJECT = "create_project"
    LIST_SERVICES = "list_services"
    GET_SERVICE = "get_service"
    GET_SERVICE_LOG = "get_service_log"
    GET_LOGS = "get_logs"
    GET_LOG_RESOURCE_TYPES = "get_log_resource_types"
    DEPLOY_LOCAL_FILES = "deploy_local_files"
    DEPLOY_LOCAL_FOLDER = "deploy_local_folder"
    DEPLOY_FILE_CONTENTS = "deploy_file_contents"


# Tools available in local/stdio mode
LOCAL_TOOLS: tuple[ToolName, ...] = (
    ToolName.LIST_PROJECTS,
    ToolName.CREATE_PROJECT,
    ToolName.LIST_SERVICES,
    ToolName.GET_SERVICE,
    ToolName.GET_SERVICE_LOG,
    ToolName.GET_LOGS,
    ToolName.GET_LOG_RESOURCE_TYPES,
    ToolName.DEPLOY_LOCAL_FILES,
    ToolName.DEPLOY_LOCAL_FOLDER,
    ToolName.DEPLOY_FILE_CONTENTS,
)

# Tools available in remote/GCP mode: no local filesystem, no project management
REMOTE_TOOLS: tuple[ToolName, ...] = (
    ToolName.LIST_SERVICES,
    ToolName.GET_SERVICE,
    ToolName.GET_SERVICE_LOG,
    ToolName.GET_LOGS,
    ToolName.GET_LOG_RESOURCE_TYPES,
    ToolName.DEPLOY_FILE_CONTENTS,
)

ToolFilter = Callable[[Union[str, ToolName]], bool]


class ToolFilterError(ConfigurationError):
    """Raised when a filter list names tools outside the active catalog."""


def catalog_for(mode: ExecutionMode) -> tuple[ToolName, ...]:
    """Return the ordered tool catalog for an execution mode."""
    if mode == ExecutionMode.REMOTE:
        return REMOTE_TOOLS
    return LOCAL_TOOLS


def _mode(is_remote: bool) -> ExecutionMode:
    return ExecutionMode.REMOTE if is_remote else ExecutionMode.LOCAL


def _tool_key(name: Union[str, ToolName]) -> str:
    return name.value if isinstance(name, ToolName) else name


def list_available_tools(is_remote: bool = False) -> str:
    """Human-readable list of the active catalog, for error messages."""
    mode = _mode(is_remote)
    names = ", ".join(tool.value for tool in catalog_for(mode))
    return f"Available tools in {mode.value} mode: {names}"


def _validate_names(names: Optional[Iterable[str]], flag: str, is_remote: bool) -> None:
    if not names:
        return
    valid = {tool.value for tool in catalog_for(_mode(is_remote))}
    invalid = [name for name in names if _tool_key(name) not in valid]
    if invalid:
        raise ToolFilterError(
            f"Invalid tool names in {flag}: {', '.join(_tool_key(n) for n in invalid)}. "
            f"{list_available_tools(is_remote)}"
        )


def create_tool_filter(
    enabled_tools: Optional[list[str]],
    disabled_tools: Optional[list[str]],
    is_remote: bool = False,
) -> ToolFilter:
    """
    Validate tool names and create a filter function.

    Args:
        enabled_tools: Tools to enable (None or empty means all)
        disabled_tools: Tools to disable (None or empty means none)
        is_remote: Whether running in remote mode

    Returns:
        Predicate taking a tool name and returning whether to register it.

    Raises:
        ToolFilterError: if either list contains a name outside the catalog.
    """
    _validate_names(enabled_tools, "--enabled-tools", is_remote)
    _validate_names(disabled_tools, "--disabled-tools", is_remote)

    enabled = frozenset(_tool_key(n) for n in enabled_tools or ())
    disabled = frozenset(_tool_key(n) for n in disabled_tools or ())

    def should_register_tool(tool_name: Union[str, ToolName]) -> bool:
        key = _tool_key(tool_name)
        if enabled:
            return key in enabled
        if disabled:
            return key not in disabled
        return True

    return should_register_tool
