"""Pytest fixtures for Cloud Run MCP tests."""

from datetime import datetime, timezone

import pytest
from unittest.mock import MagicMock

from cloudrun_mcp.config import ToolSettings
from cloudrun_mcp.models import ExecutionMode, RawLogPage


@pytest.fixture
def local_settings():
    """Create local (stdio) tool settings."""
    return ToolSettings(
        default_project_id="local-project",
        default_region="europe-west1",
        default_service_name="my-service",
        skip_iam_check=True,
        mode=ExecutionMode.LOCAL,
        service_log_max_pages=50,
    )


@pytest.fixture
def remote_settings():
    """Create remote (hosted on GCP) tool settings."""
    return ToolSettings(
        default_project_id="server-project",
        default_region="us-central1",
        default_service_name=None,
        skip_iam_check=True,
        mode=ExecutionMode.REMOTE,
        service_log_max_pages=50,
    )


@pytest.fixture
def fixed_now():
    """A fixed 'now' for time range tests."""
    return datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_record(message="hello", severity="INFO", resource_type="cloud_run_revision", **extra):
    """Build a raw log record as returned by a LogBackend."""
    record = {
        "timestamp": datetime(2025, 1, 15, 10, 30, 45, 123000, tzinfo=timezone.utc),
        "severity": severity,
        "resource": {"type": resource_type, "labels": {"service_name": "my-service"}},
        "text_payload": message,
    }
    record.update(extra)
    return record


@pytest.fixture
def record_factory():
    """Factory for raw log records."""
    return make_record


@pytest.fixture
def paged_backend():
    """Backend returning 3 pages of 2, 2 and 1 records."""
    backend = MagicMock()
    backend.list_entries.side_effect = [
        RawLogPage(entries=[make_record("a"), make_record("b")], next_page_token="t1"),
        RawLogPage(entries=[make_record("c"), make_record("d")], next_page_token="t2"),
        RawLogPage(entries=[make_record("e")], next_page_token=None),
    ]
    return backend
