"""
Cloud Run service queries.
"""

from dataclasses import dataclass
from typing import Optional

from google.api_core.exceptions import NotFound
from google.cloud import run_v2

from .gcp_logs import LogBackend, fetch_all_pages, format_logs_for_display
from .logging_utils import get_safe_logger
from .models import AccumulatedLogs, OrderBy


logger = get_safe_logger(__name__)

SERVICE_LOG_PAGE_SIZE = 100


@dataclass
class ServiceSummary:
    """Cloud Run service as shown to the agent."""
    name: str
    uri: str
    last_modifier: Optional[str] = None

    @classmethod
    def from_service(cls, service: run_v2.Service) -> "ServiceSummary":
        # service.name is the full resource path
        return cls(
            name=service.name.rsplit("/", 1)[-1],
            uri=service.uri,
            last_modifier=service.last_modifier or None,
        )


def _parent(project: str, region: str) -> str:
    return f"projects/{project}/locations/{region}"


def list_services(project: str, region: str) -> list[ServiceSummary]:
    """List Cloud Run services in a project and region."""
    client = run_v2.ServicesClient()
    response = client.list_services(parent=_parent(project, region))
    return [ServiceSummary.from_service(service) for service in response]


def get_service(project: str, region: str, service: str) -> Optional[ServiceSummary]:
    """Get a Cloud Run service, or None if it does not exist."""
    client = run_v2.ServicesClient()
    try:
        result = client.get_service(name=f"{_parent(project, region)}/services/{service}")
    except NotFound:
        return None
    return ServiceSummary.from_service(result)


def service_log_filter(region: str, service: str) -> str:
    """Filter selecting every log line of one Cloud Run service."""
    return (
        'resource.type="cloud_run_revision" AND '
        f'resource.labels.service_name="{service}" AND '
        f'resource.labels.location="{region}"'
    )


async def get_service_logs(
    backend: LogBackend,
    project: str,
    region: str,
    service: str,
    max_pages: Optional[int],
) -> AccumulatedLogs:
    """Fetch all log pages of a service."""
    return await fetch_all_pages(
        backend,
        project,
        service_log_filter(region, service),
        order_by=OrderBy.DESC,
        page_size=SERVICE_LOG_PAGE_SIZE,
        max_pages=max_pages,
        context=f"service {service} in project {project} (region {region})",
    )


def format_service_logs(logs: AccumulatedLogs) -> str:
    """Render service logs, noting when the page ceiling cut them short."""
    text = format_logs_for_display(logs.entries)
    if logs.truncated:
        text += (
            f"\n\nOutput limited to {logs.pages_fetched} pages ({len(logs.entries)} entries); "
            "older logs exist. Use get_logs with a timeRange to query them."
        )
    return text
