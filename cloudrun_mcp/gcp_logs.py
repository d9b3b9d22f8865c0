"""
Cloud Logging queries: filter construction, paginated fetching and rendering.

Flow:
    LogQueryOptions -> build_log_filter -> LogBackend.list_entries (per page)
    -> format_log_entry -> format_logs_for_display
"""

import asyncio
import json
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from google.cloud.audit import audit_log_pb2
from google.cloud.logging_v2.services.logging_service_v2 import LoggingServiceV2Client
from google.logging.type import log_severity_pb2
from google.protobuf.json_format import MessageToDict
from google.protobuf.message import DecodeError

from .config import DEFAULT_MAX_SERVICE_LOG_PAGES
from .logging_utils import get_safe_logger
from .models import (
    DEFAULT_LIMIT,
    AccumulatedLogs,
    HttpRequestInfo,
    LogEntry,
    LogQueryOptions,
    LogQueryResult,
    OrderBy,
    OutputFormat,
    RawLogPage,
    Severity,
)


logger = get_safe_logger(__name__)

NO_LOGS_MESSAGE = "No logs found."
PROTOBUF_PLACEHOLDER = "[Binary/Protobuf data]"

TABLE_HEADERS = ("Timestamp", "Severity", "Resource", "Message")
TABLE_TIMESTAMP_WIDTH = 19  # date + time, no fraction or zone
TABLE_MESSAGE_WIDTH = 100

# Common GCP resource types for logging filters
COMMON_RESOURCE_TYPES = [
    "cloud_run_revision",
    "gce_instance",
    "k8s_container",
    "k8s_cluster",
    "k8s_node",
    "k8s_pod",
    "gae_app",
    "cloud_function",
    "cloud_sql_database",
    "gcs_bucket",
    "pubsub_topic",
    "pubsub_subscription",
    "bigquery_resource",
    "dataflow_job",
    "compute_network",
    "global",
    "project",
]

_TIME_RANGE_PATTERN = re.compile(r'^(\d+)([hmd])$')
_TIME_UNITS = {
    "h": "hours",
    "m": "minutes",
    "d": "days",
}


class LogQueryError(Exception):
    """Raised when the Logging API call fails; carries query context."""

    def __init__(self, message: str, project_id: str, query: str):
        super().__init__(message)
        self.project_id = project_id
        self.query = query


# ---------------------------------------------------------------------------
# Time range
# ---------------------------------------------------------------------------

class TimeRangeStatus(str, Enum):
    ABSENT = "absent"
    MALFORMED = "malformed"
    OK = "ok"


@dataclass(frozen=True)
class TimeRangeResult:
    """Outcome of parsing a time range token such as '2h' or '7d'."""
    status: TimeRangeStatus
    clause: Optional[str] = None


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_time_range(token: Optional[str], now: Optional[datetime] = None) -> TimeRangeResult:
    """
    Parse a compact duration into a lower-bound timestamp clause.

    Malformed tokens are not an error: a warning is logged and no clause is
    produced, so the query runs without a time bound.
    """
    if not token:
        return TimeRangeResult(TimeRangeStatus.ABSENT)

    match = _TIME_RANGE_PATTERN.match(token)
    if not match:
        logger.warning(f"Invalid time range format: {token}. Expected format: '1h', '24h', '7d'")
        return TimeRangeResult(TimeRangeStatus.MALFORMED)

    amount, unit = match.groups()
    unit_name = _TIME_UNITS.get(unit)
    if unit_name is None:
        logger.warning(f"Unsupported time unit: {unit}")
        return TimeRangeResult(TimeRangeStatus.MALFORMED)

    now = now or datetime.now(timezone.utc)
    start_time = now - timedelta(**{unit_name: int(amount)})
    return TimeRangeResult(TimeRangeStatus.OK, f'timestamp>="{format_timestamp(start_time)}"')


def build_time_range_filter(token: Optional[str], now: Optional[datetime] = None) -> Optional[str]:
    """Time clause for a token, or None when absent or malformed."""
    return parse_time_range(token, now).clause


# ---------------------------------------------------------------------------
# Filter construction
# ---------------------------------------------------------------------------

def build_log_filter(options: LogQueryOptions, now: Optional[datetime] = None) -> str:
    """
    Compose the Cloud Logging filter for a query.

    Clause order: custom filter, resource type, severity, time range.
    Returns an empty string when no clause applies.
    """
    filter_parts = []

    if options.filter:
        filter_parts.append(f"({options.filter})")

    if options.resource_type:
        filter_parts.append(f'resource.type="{options.resource_type}"')

    severity = Severity(options.severity) if options.severity else Severity.DEFAULT
    if severity != Severity.DEFAULT:
        filter_parts.append(f"severity>={severity.value}")

    time_filter = build_time_range_filter(options.time_range, now)
    if time_filter:
        filter_parts.append(time_filter)

    return " AND ".join(filter_parts)


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------

class LogBackend(Protocol):
    """A paginated source of raw log records."""

    def list_entries(
        self,
        project_id: str,
        filter_: str,
        order_by: str,
        page_size: int,
        page_token: Optional[str] = None,
    ) -> RawLogPage:
        ...


class GcpLoggingBackend:
    """LogBackend over the Cloud Logging v2 API.

    Fetches exactly one page per call and converts protobuf entries into
    plain record mappings understood by format_log_entry().
    """

    def __init__(self, client: Optional[LoggingServiceV2Client] = None):
        self._client = client or LoggingServiceV2Client()

    def list_entries(
        self,
        project_id: str,
        filter_: str,
        order_by: str,
        page_size: int,
        page_token: Optional[str] = None,
    ) -> RawLogPage:
        request = {
            "resource_names": [f"projects/{project_id}"],
            "filter": filter_,
            "order_by": order_by,
            "page_size": page_size,
        }
        if page_token:
            # Token is bound to the same filter and order_by
            request["page_token"] = page_token

        pager = self._client.list_log_entries(request=request)
        # First page only; iterating the pager would fetch the rest
        response = next(iter(pager.pages))
        return RawLogPage(
            entries=[entry_to_record(entry) for entry in response.entries],
            next_page_token=response.next_page_token or None,
        )


def _severity_name(value: int) -> str:
    # proto-plus exposes LogEntry.severity as a bare int
    try:
        return log_severity_pb2.LogSeverity.Name(value)
    except ValueError:
        return str(value)


def restore_integers(value: Any) -> Any:
    """Undo Struct's number coercion: integral floats become ints again."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {key: restore_integers(item) for key, item in value.items()}
    if isinstance(value, list):
        return [restore_integers(item) for item in value]
    return value


def entry_to_record(entry: Any) -> dict[str, Any]:
    """Convert a logging_v2 LogEntry into a plain record mapping."""
    pb = type(entry).pb(entry)
    record: dict[str, Any] = {
        "timestamp": pb.timestamp.ToDatetime(tzinfo=timezone.utc) if pb.HasField("timestamp") else None,
        "severity": _severity_name(pb.severity),
        "labels": dict(pb.labels),
        "insert_id": pb.insert_id or None,
        "log_name": pb.log_name or None,
    }

    if pb.HasField("resource"):
        record["resource"] = {
            "type": pb.resource.type,
            "labels": dict(pb.resource.labels),
        }

    if pb.HasField("http_request"):
        req = pb.http_request
        record["http_request"] = {
            "request_method": req.request_method,
            "request_url": req.request_url,
            "status": req.status,
            "response_size": req.response_size,
            "user_agent": req.user_agent,
            "remote_ip": req.remote_ip,
        }

    payload = pb.WhichOneof("payload")
    if payload == "proto_payload":
        record["proto_payload"] = pb.proto_payload.value
    elif payload == "json_payload":
        record["json_payload"] = restore_integers(MessageToDict(pb.json_payload))
    elif payload == "text_payload":
        record["text_payload"] = pb.text_payload

    return record


class LoggingBackendProvider:
    """Process-wide backend, constructed once on first use.

    Construction is guarded by a lock so overlapping first calls build a
    single client.
    """

    def __init__(self, factory: Callable[[], LogBackend] = GcpLoggingBackend):
        self._factory = factory
        self._backend: Optional[LogBackend] = None
        self._lock = threading.Lock()

    def get(self) -> LogBackend:
        if self._backend is None:
            with self._lock:
                if self._backend is None:
                    self._backend = self._factory()
        return self._backend

    def reset(self) -> None:
        """Drop the cached backend. Use for testing only."""
        with self._lock:
            self._backend = None


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

async def get_logs(
    backend: LogBackend,
    project_id: str,
    options: LogQueryOptions,
    now: Optional[datetime] = None,
) -> LogQueryResult:
    """Fetch a single page of logs for a generic query."""
    query = build_log_filter(options, now)
    logger.info(f"Fetching logs for project {project_id} with filter: {query}")

    try:
        page = await asyncio.to_thread(
            backend.list_entries,
            project_id,
            query,
            OrderBy(options.order_by).value,
            options.page_size,
            options.page_token,
        )
    except Exception as e:
        logger.error(f"Error fetching logs for project {project_id} (filter: {query}): {e}")
        raise LogQueryError(str(e), project_id=project_id, query=query) from e

    return LogQueryResult(
        entries=[format_log_entry(record) for record in page.entries],
        query=query,
        next_page_token=page.next_page_token or None,
    )


async def fetch_all_pages(
    backend: LogBackend,
    project_id: str,
    filter_: str,
    order_by: OrderBy = OrderBy.DESC,
    page_size: int = DEFAULT_LIMIT,
    max_pages: Optional[int] = DEFAULT_MAX_SERVICE_LOG_PAGES,
    context: Optional[str] = None,
) -> AccumulatedLogs:
    """
    Fetch every page matching a filter, in backend order.

    Pages are requested strictly one after another, each with the token
    returned by the previous one. Stops when no token comes back, or after
    max_pages pages (result marked truncated). max_pages=None means no
    ceiling. Any backend error aborts the loop and discards what was read.
    """
    context = context or f"project {project_id}"
    entries: list[LogEntry] = []
    page_token: Optional[str] = None
    pages_fetched = 0

    while True:
        try:
            page = await asyncio.to_thread(
                backend.list_entries,
                project_id,
                filter_,
                OrderBy(order_by).value,
                page_size,
                page_token,
            )
        except Exception as e:
            logger.error(f"Error fetching logs for {context} after {pages_fetched} page(s): {e}")
            raise LogQueryError(str(e), project_id=project_id, query=filter_) from e

        pages_fetched += 1
        entries.extend(format_log_entry(record) for record in page.entries)

        page_token = page.next_page_token or None
        if not page_token:
            return AccumulatedLogs(entries=entries, pages_fetched=pages_fetched)

        if max_pages is not None and pages_fetched >= max_pages:
            logger.warning(
                f"Stopped fetching logs for {context} after {pages_fetched} pages "
                f"({len(entries)} entries); more pages are available"
            )
            return AccumulatedLogs(entries=entries, pages_fetched=pages_fetched, truncated=True)


def get_resource_types() -> list[str]:
    """Resource types commonly used in logging filters."""
    return list(COMMON_RESOURCE_TYPES)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PayloadDecodeResult:
    """Outcome of decoding a protobuf payload."""
    ok: bool
    log_data: str
    structured_data: Any = None


def decode_audit_log(value: bytes) -> PayloadDecodeResult:
    """Decode a protobuf payload as google.cloud.audit.AuditLog.

    Never raises: undecodable data yields the placeholder text.
    """
    audit_log = audit_log_pb2.AuditLog()
    try:
        audit_log.ParseFromString(value)
    except (DecodeError, TypeError) as e:
        logger.debug(f"Could not decode protobuf payload: {e}")
        return PayloadDecodeResult(ok=False, log_data=PROTOBUF_PLACEHOLDER)

    log_data = (
        f"{audit_log.method_name}: "
        f"{audit_log.status.message}{audit_log.authentication_info.principal_email}"
    )
    return PayloadDecodeResult(
        ok=True,
        log_data=log_data,
        structured_data=restore_integers(MessageToDict(audit_log)),
    )


def _format_http_request(req: Optional[dict[str, Any]]) -> Optional[HttpRequestInfo]:
    if not req:
        return None
    return HttpRequestInfo(
        method=req.get("request_method"),
        url=req.get("request_url"),
        status=req.get("status"),
        response_size=req.get("response_size"),
        user_agent=req.get("user_agent"),
        remote_ip=req.get("remote_ip"),
    )


def format_log_entry(record: dict[str, Any]) -> LogEntry:
    """Normalize one raw log record."""
    timestamp = record.get("timestamp")
    if isinstance(timestamp, datetime):
        timestamp = format_timestamp(timestamp)

    resource = record.get("resource") or {}

    log_data = ""
    structured_data = None

    if record.get("proto_payload"):
        decoded = decode_audit_log(record["proto_payload"])
        log_data = decoded.log_data
        structured_data = decoded.structured_data
    elif isinstance(record.get("json_payload"), dict):
        structured_data = record["json_payload"]
        log_data = json.dumps(structured_data, indent=2, ensure_ascii=False, default=str)
    elif record.get("text_payload"):
        log_data = str(record["text_payload"])

    return LogEntry(
        timestamp=timestamp or "N/A",
        severity=record.get("severity") or "DEFAULT",
        resource_type=resource.get("type") or "unknown",
        resource_labels=dict(resource.get("labels") or {}),
        http_request=_format_http_request(record.get("http_request")),
        log_data=log_data,
        structured_data=structured_data,
        labels=dict(record.get("labels") or {}),
        insert_id=record.get("insert_id"),
        log_name=record.get("log_name"),
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def format_logs_for_display(entries: list[LogEntry], format: str = OutputFormat.TEXT.value) -> str:
    """
    Render log entries as text, JSON or a table.

    Empty input yields "No logs found." whatever the format.
    """
    if not entries:
        return NO_LOGS_MESSAGE

    if format == OutputFormat.JSON:
        return json.dumps([entry.to_dict() for entry in entries], indent=2, ensure_ascii=False, default=str)

    if format == OutputFormat.TABLE:
        return _format_logs_as_table(entries)

    return "\n".join(_format_text_line(entry) for entry in entries)


def _format_text_line(entry: LogEntry) -> str:
    resource_info = "" if entry.resource_type == "unknown" else f" [{entry.resource_type}]"

    http_info = ""
    if entry.http_request:
        req = entry.http_request
        parts = [str(v) for v in (req.method, req.status, req.url) if v not in (None, "")]
        if parts:
            http_info = " " + " ".join(parts)

    return f"[{entry.timestamp}] [{entry.severity}]{resource_info}{http_info} {entry.log_data}"


def _truncate(text: str, width: int) -> str:
    if len(text) > width:
        return text[:width] + "..."
    return text


def _format_logs_as_table(entries: list[LogEntry]) -> str:
    rows = [
        [
            entry.timestamp[:TABLE_TIMESTAMP_WIDTH],
            entry.severity,
            entry.resource_type,
            _truncate(entry.log_data, TABLE_MESSAGE_WIDTH),
        ]
        for entry in entries
    ]

    widths = [
        max(len(header), *(len(row[i]) for row in rows))
        for i, header in enumerate(TABLE_HEADERS)
    ]

    header_row = " | ".join(header.ljust(widths[i]) for i, header in enumerate(TABLE_HEADERS))
    separator = "-+-".join("-" * width for width in widths)
    data_rows = [
        " | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row))
        for row in rows
    ]

    return "\n".join([header_row, separator, *data_rows])
