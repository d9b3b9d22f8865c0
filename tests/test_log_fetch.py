"""Tests for log fetching: single page queries and exhaustive pagination."""

import asyncio
import threading
import time
from datetime import datetime, timezone
from unittest.mock import MagicMock, call

import pytest
from google.api import monitored_resource_pb2
from google.cloud.audit.audit_log_pb2 import AuditLog, AuthenticationInfo
from google.cloud.logging_v2.services.logging_service_v2.pagers import ListLogEntriesPager
from google.cloud.logging_v2.types import ListLogEntriesRequest, ListLogEntriesResponse
from google.cloud.logging_v2.types import LogEntry as ApiLogEntry
from google.logging.type import http_request_pb2, log_severity_pb2
from google.protobuf import any_pb2
from google.rpc.status_pb2 import Status

from cloudrun_mcp.gcp_logs import (
    GcpLoggingBackend,
    LoggingBackendProvider,
    LogQueryError,
    entry_to_record,
    fetch_all_pages,
    format_log_entry,
    get_logs,
    get_resource_types,
    restore_integers,
)
from cloudrun_mcp.models import LogQueryOptions, OrderBy, RawLogPage, Severity


class TestFetchAllPages:
    """Tests for fetch_all_pages."""

    def test_follows_tokens_until_exhausted(self, paged_backend):
        """Test that every page is fetched with the previous page's token."""
        result = asyncio.run(fetch_all_pages(paged_backend, "proj", "f", page_size=100))

        assert paged_backend.list_entries.call_count == 3
        assert paged_backend.list_entries.call_args_list == [
            call("proj", "f", "timestamp desc", 100, None),
            call("proj", "f", "timestamp desc", 100, "t1"),
            call("proj", "f", "timestamp desc", 100, "t2"),
        ]
        assert [e.log_data for e in result.entries] == ["a", "b", "c", "d", "e"]
        assert result.pages_fetched == 3
        assert result.truncated is False

    def test_single_page(self, record_factory):
        """Test that a page without token ends the loop."""
        backend = MagicMock()
        backend.list_entries.return_value = RawLogPage(entries=[record_factory("only")])

        result = asyncio.run(fetch_all_pages(backend, "proj", "f"))

        backend.list_entries.assert_called_once()
        assert len(result.entries) == 1

    def test_empty_token_treated_as_end(self, record_factory):
        """Test that an empty string token stops pagination."""
        backend = MagicMock()
        backend.list_entries.return_value = RawLogPage(entries=[record_factory()], next_page_token="")

        result = asyncio.run(fetch_all_pages(backend, "proj", "f"))

        assert backend.list_entries.call_count == 1
        assert result.truncated is False

    def test_page_ceiling_truncates(self, paged_backend):
        """Test that the loop stops at max_pages and marks the result."""
        result = asyncio.run(fetch_all_pages(paged_backend, "proj", "f", max_pages=2))

        assert paged_backend.list_entries.call_count == 2
        assert len(result.entries) == 4
        assert result.truncated is True

    def test_no_ceiling(self, paged_backend):
        """Test that max_pages=None follows every token."""
        result = asyncio.run(fetch_all_pages(paged_backend, "proj", "f", max_pages=None))

        assert result.pages_fetched == 3
        assert result.truncated is False

    def test_ceiling_not_hit_when_last_page_has_no_token(self, paged_backend):
        """Test that reaching max_pages on the final page is not truncation."""
        result = asyncio.run(fetch_all_pages(paged_backend, "proj", "f", max_pages=3))

        assert result.truncated is False

    def test_error_aborts_and_discards(self, record_factory):
        """Test that a failing page raises without partial results."""
        backend = MagicMock()
        backend.list_entries.side_effect = [
            RawLogPage(entries=[record_factory("a")], next_page_token="t1"),
            RuntimeError("quota exceeded"),
        ]

        with pytest.raises(LogQueryError) as exc_info:
            asyncio.run(fetch_all_pages(backend, "proj", "the-filter"))

        assert "quota exceeded" in str(exc_info.value)
        assert exc_info.value.project_id == "proj"
        assert exc_info.value.query == "the-filter"
        assert backend.list_entries.call_count == 2

    def test_order_passed_through(self, record_factory):
        """Test ascending order reaches the backend."""
        backend = MagicMock()
        backend.list_entries.return_value = RawLogPage(entries=[])

        asyncio.run(fetch_all_pages(backend, "proj", "f", order_by=OrderBy.ASC))

        assert backend.list_entries.call_args[0][2] == "timestamp asc"


class TestGetLogs:
    """Tests for get_logs (single page)."""

    def test_returns_one_page_and_token(self, record_factory, fixed_now):
        """Test that get_logs never follows the token itself."""
        backend = MagicMock()
        backend.list_entries.return_value = RawLogPage(
            entries=[record_factory("x"), record_factory("y")],
            next_page_token="next",
        )
        options = LogQueryOptions(severity=Severity.ERROR, limit=50)

        result = asyncio.run(get_logs(backend, "proj", options, now=fixed_now))

        backend.list_entries.assert_called_once_with("proj", "severity>=ERROR", "timestamp desc", 50, None)
        assert result.total_count == 2
        assert result.next_page_token == "next"
        assert result.query == "severity>=ERROR"

    def test_page_size_clamped(self):
        """Test that a large limit is clamped to 1000 per page."""
        backend = MagicMock()
        backend.list_entries.return_value = RawLogPage(entries=[])

        asyncio.run(get_logs(backend, "proj", LogQueryOptions(limit=5000)))

        assert backend.list_entries.call_args[0][3] == 1000

    def test_page_token_forwarded(self):
        """Test that the caller's token is passed to the backend."""
        backend = MagicMock()
        backend.list_entries.return_value = RawLogPage(entries=[])

        result = asyncio.run(get_logs(backend, "proj", LogQueryOptions(page_token="abc")))

        assert backend.list_entries.call_args[0][4] == "abc"
        assert result.next_page_token is None

    def test_backend_error_wrapped(self):
        """Test that API failures carry project and query."""
        backend = MagicMock()
        backend.list_entries.side_effect = RuntimeError("permission denied")

        with pytest.raises(LogQueryError) as exc_info:
            asyncio.run(get_logs(backend, "proj", LogQueryOptions(resource_type="gce_instance")))

        assert exc_info.value.query == 'resource.type="gce_instance"'
        assert "permission denied" in str(exc_info.value)


class TestLoggingBackendProvider:
    """Tests for the lazily built backend."""

    def test_builds_once(self):
        """Test that repeated get() returns the same backend."""
        factory = MagicMock(return_value=MagicMock())
        provider = LoggingBackendProvider(factory)

        assert provider.get() is provider.get()
        factory.assert_called_once()

    def test_reset_rebuilds(self):
        """Test that reset() drops the cached backend."""
        factory = MagicMock(side_effect=[MagicMock(), MagicMock()])
        provider = LoggingBackendProvider(factory)

        first = provider.get()
        provider.reset()
        second = provider.get()

        assert first is not second
        assert factory.call_count == 2

    def test_concurrent_first_use_builds_once(self):
        """Test that overlapping first calls construct a single client."""
        created = []

        def slow_factory():
            time.sleep(0.05)
            backend = MagicMock()
            created.append(backend)
            return backend

        provider = LoggingBackendProvider(slow_factory)
        results = []
        threads = [threading.Thread(target=lambda: results.append(provider.get())) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(created) == 1
        assert all(r is created[0] for r in results)


class TestGetResourceTypes:
    """Tests for get_resource_types."""

    def test_contains_common_types(self):
        """Test the well-known resource types are listed."""
        types = get_resource_types()

        assert "cloud_run_revision" in types
        assert "k8s_container" in types
        assert "global" in types

    def test_returns_copy(self):
        """Test that callers cannot mutate the shared list."""
        get_resource_types().append("mine")

        assert "mine" not in get_resource_types()


def _api_entry(**kwargs):
    defaults = {
        "timestamp": datetime(2025, 1, 1, 1, 2, 3, tzinfo=timezone.utc),
        "severity": log_severity_pb2.ERROR,
        "resource": monitored_resource_pb2.MonitoredResource(
            type="cloud_run_revision",
            labels={"service_name": "api", "location": "europe-west1"},
        ),
        "labels": {"instanceId": "abc"},
        "insert_id": "insert-1",
        "log_name": "projects/proj/logs/run.googleapis.com%2Fstdout",
    }
    defaults.update(kwargs)
    return ApiLogEntry(**defaults)


class TestEntryToRecord:
    """Tests for converting Logging API entries."""

    def test_text_entry(self):
        """Test common fields and text payload."""
        record = entry_to_record(_api_entry(text_payload="hello"))

        assert record["timestamp"] == datetime(2025, 1, 1, 1, 2, 3, tzinfo=timezone.utc)
        assert record["severity"] == "ERROR"
        assert record["resource"] == {
            "type": "cloud_run_revision",
            "labels": {"service_name": "api", "location": "europe-west1"},
        }
        assert record["labels"] == {"instanceId": "abc"}
        assert record["insert_id"] == "insert-1"
        assert record["text_payload"] == "hello"
        assert "http_request" not in record

    def test_severity_survives_formatting(self):
        """Test that the API severity reaches the normalized entry."""
        entry = format_log_entry(entry_to_record(_api_entry(text_payload="hello")))

        assert entry.timestamp == "2025-01-01T01:02:03.000Z"
        assert entry.severity == "ERROR"
        assert entry.log_data == "hello"

    @pytest.mark.parametrize("severity,name", [
        (log_severity_pb2.DEFAULT, "DEFAULT"),
        (log_severity_pb2.INFO, "INFO"),
        (log_severity_pb2.WARNING, "WARNING"),
        (log_severity_pb2.CRITICAL, "CRITICAL"),
    ])
    def test_severity_names(self, severity, name):
        """Test severity enum values map to their names."""
        assert entry_to_record(_api_entry(severity=severity))["severity"] == name

    def test_json_payload_keeps_integers(self):
        """Test that integral numbers are not rendered as floats."""
        entry = _api_entry(json_payload={"message": "done", "count": 1, "ratio": 0.5, "items": [2, 3]})

        record = entry_to_record(entry)

        assert record["json_payload"] == {"message": "done", "count": 1, "ratio": 0.5, "items": [2, 3]}
        assert isinstance(record["json_payload"]["count"], int)
        log_data = format_log_entry(record).log_data
        assert '"count": 1' in log_data
        assert '"count": 1.0' not in log_data

    def test_audit_log_payload(self):
        """Test that an AuditLog packed in Any is decoded."""
        payload = any_pb2.Any()
        payload.Pack(AuditLog(
            method_name="google.cloud.run.v2.Services.UpdateService",
            status=Status(message="ok "),
            authentication_info=AuthenticationInfo(principal_email="dev@example.com"),
        ))

        record = entry_to_record(_api_entry(proto_payload=payload))
        entry = format_log_entry(record)

        assert isinstance(record["proto_payload"], bytes)
        assert entry.log_data == "google.cloud.run.v2.Services.UpdateService: ok dev@example.com"

    def test_http_request(self):
        """Test HTTP request fields."""
        entry = _api_entry(
            text_payload="x",
            http_request=http_request_pb2.HttpRequest(
                request_method="POST",
                request_url="https://api.run.app/items",
                status=503,
                response_size=42,
                user_agent="curl/8",
                remote_ip="10.0.0.2",
            ),
        )

        record = entry_to_record(entry)

        assert record["http_request"] == {
            "request_method": "POST",
            "request_url": "https://api.run.app/items",
            "status": 503,
            "response_size": 42,
            "user_agent": "curl/8",
            "remote_ip": "10.0.0.2",
        }


class TestRestoreIntegers:
    """Tests for restore_integers."""

    def test_nested(self):
        """Test dicts and lists are walked."""
        assert restore_integers({"a": 1.0, "b": [2.0, 2.5], "c": {"d": 3.0}, "e": "4"}) == {
            "a": 1, "b": [2, 2.5], "c": {"d": 3}, "e": "4",
        }

    def test_bool_untouched(self):
        """Test that booleans stay booleans."""
        assert restore_integers({"ok": True}) == {"ok": True}


class TestGcpLoggingBackend:
    """Tests for GcpLoggingBackend against the API pager."""

    def _pager(self, follow_up):
        return ListLogEntriesPager(
            method=follow_up,
            request=ListLogEntriesRequest(resource_names=["projects/proj"]),
            response=ListLogEntriesResponse(
                entries=[_api_entry(text_payload="first"), _api_entry(text_payload="second")],
                next_page_token="tok-2",
            ),
        )

    def test_reads_single_page(self):
        """Test that only the first page is read and its token returned."""
        follow_up = MagicMock()
        client = MagicMock()
        client.list_log_entries.return_value = self._pager(follow_up)
        backend = GcpLoggingBackend(client=client)

        page = backend.list_entries("proj", 'severity>=ERROR', "timestamp desc", 100)

        follow_up.assert_not_called()
        assert [r["text_payload"] for r in page.entries] == ["first", "second"]
        assert page.entries[0]["severity"] == "ERROR"
        assert page.next_page_token == "tok-2"
        client.list_log_entries.assert_called_once_with(request={
            "resource_names": ["projects/proj"],
            "filter": 'severity>=ERROR',
            "order_by": "timestamp desc",
            "page_size": 100,
        })

    def test_page_token_forwarded(self):
        """Test that a caller token is sent with the request."""
        client = MagicMock()
        client.list_log_entries.return_value = self._pager(MagicMock())
        backend = GcpLoggingBackend(client=client)

        backend.list_entries("proj", "", "timestamp asc", 10, page_token="tok-1")

        assert client.list_log_entries.call_args[1]["request"]["page_token"] == "tok-1"

    def test_last_page_has_no_token(self):
        """Test that an empty API token becomes None."""
        client = MagicMock()
        client.list_log_entries.return_value = ListLogEntriesPager(
            method=MagicMock(),
            request=ListLogEntriesRequest(),
            response=ListLogEntriesResponse(entries=[]),
        )

        page = GcpLoggingBackend(client=client).list_entries("proj", "", "timestamp desc", 10)

        assert page.entries == []
        assert page.next_page_token is None
