"""
MCP tool definitions for the Cloud Run server.

TOOLS holds the static schema of every tool; build_tool_definitions()
applies the server's defaults and execution mode to it.
"""

import copy
from typing import Any, Optional

from .config import ToolSettings
from .models import MAX_PAGE_SIZE, DEFAULT_LIMIT, OrderBy, OutputFormat, Severity
from .tool_registry import ToolFilter, ToolName, catalog_for


_PROJECT = {
    "type": "string",
    "description": "Google Cloud project ID. Do not select it yourself, make sure the user provides or confirms the project ID.",
}
_REGION = {
    "type": "string",
    "description": "Region where the service is located or deployed to",
}
_SERVICE = {
    "type": "string",
    "description": "Name of the Cloud Run service",
}


TOOLS: dict[ToolName, dict[str, Any]] = {
    ToolName.LIST_PROJECTS: {
        "description": "Lists available GCP projects",
        "inputSchema": {
            "type": "object",
            "properties": {},
        },
    },
    ToolName.CREATE_PROJECT: {
        "description": """Creates a new GCP project and attempts to attach it to the first available billing account.

A project ID can be optionally specified; otherwise it will be automatically generated.""",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectId": {
                    "type": "string",
                    "description": "Optional. The desired ID for the new GCP project. If not provided, an ID will be auto-generated.",
                },
            },
        },
    },
    ToolName.LIST_SERVICES: {
        "description": "Lists Cloud Run services in a given project and region.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _PROJECT,
                "region": _REGION,
            },
        },
    },
    ToolName.GET_SERVICE: {
        "description": "Gets details for a specific Cloud Run service.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _PROJECT,
                "region": _REGION,
                "service": _SERVICE,
            },
        },
    },
    ToolName.GET_SERVICE_LOG: {
        "description": """Gets Logs and Error Messages for a specific Cloud Run service.

Returns every log line of the service, most recent first, up to the
server's page limit.""",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _PROJECT,
                "region": _REGION,
                "service": _SERVICE,
            },
        },
    },
    ToolName.GET_LOGS: {
        "description": """Gets logs from Google Cloud Logging using custom filters.

Similar to the Logs Explorer in Google Cloud Console. Allows querying logs
across all services and resources, not limited to Cloud Run.
Returns one page; use pageToken from the response to fetch the next.""",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _PROJECT,
                "filter": {
                    "type": "string",
                    "description": "Cloud Logging filter query (e.g., 'resource.type=\"cloud_run_revision\" AND severity>=ERROR')",
                },
                "resourceType": {
                    "type": "string",
                    "description": "Resource type filter (e.g., 'cloud_run_revision', 'gce_instance', 'k8s_container', 'cloud_function', 'gae_app')",
                },
                "severity": {
                    "type": "string",
                    "enum": [s.value for s in Severity],
                    "default": Severity.DEFAULT.value,
                    "description": "Minimum log severity level",
                },
                "timeRange": {
                    "type": "string",
                    "description": "Time range for logs (e.g., '1h', '24h', '7d', '30m')",
                },
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": MAX_PAGE_SIZE,
                    "default": DEFAULT_LIMIT,
                    "description": "Maximum number of log entries to return",
                },
                "orderBy": {
                    "type": "string",
                    "enum": [o.value for o in OrderBy],
                    "default": OrderBy.DESC.value,
                    "description": "Sort order for logs",
                },
                "format": {
                    "type": "string",
                    "enum": [f.value for f in OutputFormat],
                    "default": OutputFormat.TEXT.value,
                    "description": "Output format for logs",
                },
                "pageToken": {
                    "type": "string",
                    "description": "Token for pagination (to get next page of results)",
                },
            },
        },
    },
    ToolName.GET_LOG_RESOURCE_TYPES: {
        "description": "Gets available resource types for Google Cloud Logging filters. Useful for understanding what resources you can filter logs by.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _PROJECT,
            },
        },
    },
    ToolName.DEPLOY_LOCAL_FILES: {
        "description": """Deploy local files to Cloud Run.

Takes an array of absolute file paths from the local filesystem that will be
deployed. Use this tool if the files exist on the user local filesystem.""",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _PROJECT,
                "region": _REGION,
                "service": _SERVICE,
                "files": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": 'Array of absolute file paths to deploy (e.g. ["/home/user/project/src/index.js", "/home/user/project/package.json"])',
                },
            },
            "required": ["files"],
        },
    },
    ToolName.DEPLOY_LOCAL_FOLDER: {
        "description": """Deploy a local folder to Cloud Run.

Takes an absolute folder path from the local filesystem that will be deployed.
Use this tool if the entire folder content needs to be deployed.""",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _PROJECT,
                "region": _REGION,
                "service": _SERVICE,
                "folderPath": {
                    "type": "string",
                    "description": 'Absolute path to the folder to deploy (e.g. "/home/user/project/src")',
                },
            },
            "required": ["folderPath"],
        },
    },
    ToolName.DEPLOY_FILE_CONTENTS: {
        "description": """Deploy files to Cloud Run by providing their contents directly.

Takes an array of file objects containing filename and content.
Use this tool if the files only exist in the current chat context.""",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _PROJECT,
                "region": _REGION,
                "service": _SERVICE,
                "files": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "filename": {
                                "type": "string",
                                "description": 'Name and path of the file (e.g. "src/index.js" or "data/config.json")',
                            },
                            "content": {
                                "type": "string",
                                "description": "Text content of the file",
                            },
                        },
                        "required": ["filename", "content"],
                    },
                    "description": "Array of file objects containing filename and content",
                },
            },
            "required": ["files"],
        },
    },
}


def _apply_defaults(definition: dict[str, Any], settings: ToolSettings) -> None:
    properties = definition["inputSchema"]["properties"]
    defaults = {
        "project": settings.default_project_id,
        "region": settings.default_region,
        "service": settings.default_service_name,
    }
    for key, value in defaults.items():
        if key in properties and value:
            properties[key] = {**properties[key], "default": value}


def build_tool_definition(name: ToolName, settings: ToolSettings) -> dict[str, Any]:
    """Definition of one tool with the server's defaults filled in."""
    definition = copy.deepcopy(TOOLS[name])
    definition["name"] = name.value
    _apply_defaults(definition, settings)

    if settings.is_remote:
        # Remote servers act on their own project only
        definition["inputSchema"]["properties"].pop("project", None)
        definition["description"] += f"\n\nOperates on GCP project {settings.default_project_id}."

    return definition


def build_tool_definitions(
    settings: ToolSettings,
    tool_filter: Optional[ToolFilter] = None,
) -> list[dict[str, Any]]:
    """Definitions of every catalog tool the filter lets through, in catalog order."""
    return [
        build_tool_definition(name, settings)
        for name in catalog_for(settings.mode)
        if tool_filter is None or tool_filter(name)
    ]
