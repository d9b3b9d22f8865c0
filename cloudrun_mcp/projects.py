"""
GCP project listing and creation.
"""

import secrets
from dataclasses import dataclass
from typing import Optional

from google.cloud import billing_v1, resourcemanager_v3

from .logging_utils import get_safe_logger


logger = get_safe_logger(__name__)

PROJECT_CREATE_TIMEOUT = 300  # seconds


@dataclass
class ProjectInfo:
    id: str
    display_name: str = ""


@dataclass
class ProjectCreationResult:
    """Outcome of creating a project; billing is best effort."""
    project_id: str
    billing_attached: bool
    billing_message: str


def generate_project_id() -> str:
    """Random project ID: starts with a letter, 6-30 lowercase chars."""
    return f"mcp-{secrets.token_hex(4)}"


def list_projects() -> list[ProjectInfo]:
    """List projects visible to the current credentials."""
    client = resourcemanager_v3.ProjectsClient()
    return [
        ProjectInfo(id=project.project_id, display_name=project.display_name)
        for project in client.search_projects(request={"query": ""})
    ]


def attach_billing(project_id: str) -> tuple[bool, str]:
    """Attach the first open billing account to a project.

    Returns:
        (attached, message) tuple
    """
    client = billing_v1.CloudBillingClient()
    accounts = [account for account in client.list_billing_accounts() if account.open_]
    if not accounts:
        return False, "No open billing account found; attach billing manually before deploying."

    account = accounts[0]
    client.update_project_billing_info(
        name=f"projects/{project_id}",
        project_billing_info=billing_v1.ProjectBillingInfo(billing_account_name=account.name),
    )
    return True, f"Billing account {account.display_name or account.name} attached."


def create_project(project_id: Optional[str] = None) -> ProjectCreationResult:
    """Create a project and try to attach billing to it."""
    project_id = project_id or generate_project_id()
    logger.info(f"Creating GCP project {project_id}")

    client = resourcemanager_v3.ProjectsClient()
    operation = client.create_project(
        project=resourcemanager_v3.Project(project_id=project_id, display_name=project_id)
    )
    operation.result(timeout=PROJECT_CREATE_TIMEOUT)

    try:
        attached, message = attach_billing(project_id)
    except Exception as e:
        logger.warning(f"Could not attach billing to project {project_id}: {e}")
        attached, message = False, f"Failed to attach billing: {e}"

    return ProjectCreationResult(
        project_id=project_id,
        billing_attached=attached,
        billing_message=message,
    )
