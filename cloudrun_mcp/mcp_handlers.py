"""
MCP tool handlers for the Cloud Run server.

Every handler takes the tool arguments and the server's ToolSettings and
returns text. Blocking SDK calls run in worker threads.
"""

import asyncio
from typing import Any

from .config import ToolSettings
from .decorators import Handler, require_project
from .deploy import DeployRequest, FileContent, deploy, format_deploy_result
from .gcp_logs import (
    LoggingBackendProvider,
    LogBackend,
    format_logs_for_display,
    get_logs,
    get_resource_types,
)
from .logging_utils import get_safe_logger
from .models import LogQueryOptions, OutputFormat
from .projects import create_project, list_projects
from .services import format_service_logs, get_service, get_service_logs, list_services
from .tool_registry import ToolName
from .validation import (
    validate_file_contents,
    validate_local_paths,
    validate_new_project_id,
    validate_region,
    validate_service_name,
)


logger = get_safe_logger(__name__)

_backend_provider = LoggingBackendProvider()


def get_logging_backend() -> LogBackend:
    """Get or create the Cloud Logging backend (built once per process)."""
    return _backend_provider.get()


def reset_logging_backend() -> None:
    """Reset backend instance. Use for testing only."""
    _backend_provider.reset()


def _region(arguments: dict[str, Any], settings: ToolSettings) -> str:
    return arguments.get("region") or settings.default_region


def _service(arguments: dict[str, Any], settings: ToolSettings) -> Any:
    return arguments.get("service", settings.default_service_name)


async def handle_list_projects(arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Handle list_projects tool call."""
    try:
        projects = await asyncio.to_thread(list_projects)
    except Exception as e:
        logger.error(f"Error listing GCP projects: {e}")
        return f"Error listing GCP projects: {e}"

    lines = "\n".join(f"- {p.id}" for p in projects)
    return f"Available GCP Projects:\n{lines}"


async def handle_create_project(arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Handle create_project tool call."""
    project_id = arguments.get("projectId")
    if project_id is not None:
        valid, reason = validate_new_project_id(project_id)
        if not valid:
            return f"Error: {reason}"

    try:
        result = await asyncio.to_thread(create_project, project_id)
    except Exception as e:
        logger.error(f"Error creating GCP project {project_id or '(generated)'}: {e}")
        return f"Error creating GCP project or attaching billing: {e}"

    return (
        f'Successfully created GCP project with ID "{result.project_id}". '
        f"{result.billing_message} "
        "You can now use this project ID for deployments."
    )


@require_project
async def handle_list_services(arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Handle list_services tool call."""
    project = arguments["project"]
    region = _region(arguments, settings)

    try:
        services = await asyncio.to_thread(list_services, project, region)
    except Exception as e:
        logger.error(f"Error listing services for project {project} (region {region}): {e}")
        return f"Error listing services for project {project} (region {region}): {e}"

    service_list = "\n".join(f"- {s.name} (URL: {s.uri})" for s in services)
    return f"Services in project {project} (location {region}):\n{service_list}"


@require_project
async def handle_get_service(arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Handle get_service tool call."""
    project = arguments["project"]
    region = _region(arguments, settings)
    service = _service(arguments, settings)
    if not isinstance(service, str) or not service:
        return "Error: Service name must be provided."

    try:
        details = await asyncio.to_thread(get_service, project, region, service)
    except Exception as e:
        logger.error(f"Error getting service {service} in project {project} (region {region}): {e}")
        return f"Error getting service {service} in project {project} (region {region}): {e}"

    if details is None:
        return f"Service {service} not found in project {project} (region {region})."

    return "\n".join([
        f"Name: {service}",
        f"Region: {region}",
        f"Project: {project}",
        f"URL: {details.uri}",
        f"Last deployed by: {details.last_modifier or 'N/A'}",
    ])


@require_project
async def handle_get_service_log(arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Handle get_service_log tool call."""
    project = arguments["project"]
    region = _region(arguments, settings)
    service = _service(arguments, settings)
    if not isinstance(service, str) or not service:
        return "Error: Service name must be provided."

    try:
        logs = await get_service_logs(
            get_logging_backend(),
            project,
            region,
            service,
            max_pages=settings.service_log_max_pages,
        )
    except Exception as e:
        return f"Error getting Logs for service {service} in project {project} (region {region}): {e}"

    return format_service_logs(logs)


@require_project
async def handle_get_logs(arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Handle get_logs tool call."""
    project = arguments["project"]

    try:
        options = LogQueryOptions.from_arguments(arguments)
    except ValueError as e:
        return f"Error: {e}"

    output_format = arguments.get("format") or OutputFormat.TEXT.value
    if output_format not in {f.value for f in OutputFormat}:
        return f"Error: Invalid format '{output_format}'. Expected one of: text, json, table"

    try:
        result = await get_logs(get_logging_backend(), project, options)
    except Exception as e:
        return f"Error getting logs for project {project}: {e}"

    response = f"Logs for project {project}:\n"
    if result.query:
        response += f"Query: {result.query}\n"
    response += f"Found {result.total_count} entries\n\n"
    response += format_logs_for_display(result.entries, output_format)

    if result.next_page_token:
        response += f"\n\nMore logs available. Use pageToken: {result.next_page_token}"

    return response


@require_project
async def handle_get_log_resource_types(arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Handle get_log_resource_types tool call."""
    project = arguments["project"]
    resource_list = "\n".join(f"- {t}" for t in get_resource_types())
    return (
        f"Available resource types for logging in project {project}:\n{resource_list}\n\n"
        "Use these with the get_logs tool's resourceType parameter to filter logs by specific resource types."
    )


def _deploy_target(arguments: dict[str, Any], settings: ToolSettings) -> tuple[str, str, str]:
    """Resolve (region, service, error) for deploy tools."""
    region = _region(arguments, settings)
    valid, reason = validate_region(region)
    if not valid:
        return region, "", reason

    service = _service(arguments, settings)
    valid, reason = validate_service_name(service)
    if not valid:
        return region, "", reason

    return region, service, ""


async def _run_deploy(request: DeployRequest, folder: str = "") -> str:
    result = await asyncio.to_thread(deploy, request)
    return format_deploy_result(result, folder=folder or None)


@require_project
async def handle_deploy_local_files(arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Handle deploy_local_files tool call."""
    files = arguments.get("files")
    valid, reason = validate_local_paths(files)
    if not valid:
        return f"Error: {reason}"

    region, service, error = _deploy_target(arguments, settings)
    if error:
        return f"Error: {error}"

    return await _run_deploy(DeployRequest(
        project=arguments["project"],
        region=region,
        service=service,
        files=list(files),
        skip_iam_check=settings.skip_iam_check,
    ))


@require_project
async def handle_deploy_local_folder(arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Handle deploy_local_folder tool call."""
    folder_path = arguments.get("folderPath")
    if not isinstance(folder_path, str) or not folder_path.strip():
        return "Error: Folder path must be specified and be a non-empty string."

    valid, reason = validate_local_paths([folder_path])
    if not valid:
        return f"Error: {reason}"

    region, service, error = _deploy_target(arguments, settings)
    if error:
        return f"Error: {error}"

    return await _run_deploy(DeployRequest(
        project=arguments["project"],
        region=region,
        service=service,
        files=[folder_path],
        skip_iam_check=settings.skip_iam_check,
    ), folder=folder_path)


@require_project
async def handle_deploy_file_contents(arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Handle deploy_file_contents tool call."""
    files = arguments.get("files")
    valid, reason = validate_file_contents(files)
    if not valid:
        return f"Error: {reason}"

    region, service, error = _deploy_target(arguments, settings)
    if error:
        return f"Error: {error}"

    return await _run_deploy(DeployRequest(
        project=arguments["project"],
        region=region,
        service=service,
        files=[FileContent(filename=f["filename"], content=f["content"]) for f in files],
        skip_iam_check=settings.skip_iam_check,
    ))


# Handler dispatch map
HANDLERS: dict[ToolName, Handler] = {
    ToolName.LIST_PROJECTS: handle_list_projects,
    ToolName.CREATE_PROJECT: handle_create_project,
    ToolName.LIST_SERVICES: handle_list_services,
    ToolName.GET_SERVICE: handle_get_service,
    ToolName.GET_SERVICE_LOG: handle_get_service_log,
    ToolName.GET_LOGS: handle_get_logs,
    ToolName.GET_LOG_RESOURCE_TYPES: handle_get_log_resource_types,
    ToolName.DEPLOY_LOCAL_FILES: handle_deploy_local_files,
    ToolName.DEPLOY_LOCAL_FOLDER: handle_deploy_local_folder,
    ToolName.DEPLOY_FILE_CONTENTS: handle_deploy_file_contents,
}


def check_handler_coverage() -> None:
    """Fail if a tool in the catalog has no handler."""
    missing = [tool.value for tool in ToolName if tool not in HANDLERS]
    if missing:
        raise RuntimeError(f"No handler registered for tools: {', '.join(missing)}")


async def handle_tool(name: str, arguments: dict[str, Any], settings: ToolSettings) -> str:
    """Dispatch tool call to appropriate handler."""
    try:
        handler = HANDLERS[ToolName(name)]
    except (ValueError, KeyError):
        return f"Unknown tool: {name}"

    try:
        return await handler(arguments or {}, settings)
    except Exception as e:
        logger.exception(f"Error executing tool {name}")
        return f"Error executing {name}: {str(e)}"
