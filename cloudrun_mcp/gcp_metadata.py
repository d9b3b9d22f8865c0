"""
GCP environment detection and credential checks.
"""

from dataclasses import dataclass
from typing import Optional

import google.auth
import requests
from google.auth.exceptions import DefaultCredentialsError

from .config import ConfigurationError
from .logging_utils import get_safe_logger


logger = get_safe_logger(__name__)

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}
METADATA_TIMEOUT = 1  # seconds; off GCP the host does not resolve


@dataclass
class GcpInfo:
    """Project and region of the GCP runtime we are running on."""
    project: str
    region: Optional[str] = None


def _metadata(path: str, session: requests.Session) -> Optional[str]:
    resp = session.get(f"{METADATA_URL}/{path}", headers=METADATA_HEADERS, timeout=METADATA_TIMEOUT)
    if resp.status_code != 200:
        return None
    return resp.text.strip()


def check_gcp(session: Optional[requests.Session] = None) -> Optional[GcpInfo]:
    """
    Query the metadata server.

    Returns:
        GcpInfo when running on GCP, None otherwise.
    """
    session = session or requests.Session()
    try:
        project = _metadata("project/project-id", session)
        if not project:
            return None
        # Format: projects/<number>/regions/<region>
        region_path = _metadata("instance/region", session)
    except requests.RequestException as e:
        logger.debug(f"Metadata server not reachable, assuming local run: {e}")
        return None

    region = region_path.rsplit("/", 1)[-1] if region_path else None
    return GcpInfo(project=project, region=region)


def ensure_gcp_credentials() -> None:
    """
    Check that Application Default Credentials are available.

    Raises:
        ConfigurationError: with setup instructions when they are not.
    """
    try:
        _credentials, project = google.auth.default()
    except DefaultCredentialsError as e:
        raise ConfigurationError(
            "Google Cloud credentials not found. Run 'gcloud auth login' and "
            "'gcloud auth application-default login', or set GOOGLE_APPLICATION_CREDENTIALS. "
            f"Details: {e}"
        ) from e

    logger.info(f"Using Application Default Credentials (default project: {project or 'none'})")
