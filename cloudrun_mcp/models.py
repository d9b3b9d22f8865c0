"""
Type definitions for log queries, log entries and execution modes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


MAX_PAGE_SIZE = 1000
DEFAULT_LIMIT = 100


class ExecutionMode(str, Enum):
    """Where the server runs; selects the tool catalog."""
    LOCAL = "local"    # stdio, full catalog incl. filesystem tools
    REMOTE = "remote"  # hosted on GCP, restricted catalog


class Severity(str, Enum):
    """Minimum log severity accepted by get_logs."""
    DEFAULT = "DEFAULT"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class OrderBy(str, Enum):
    """Log sort order understood by the Logging API."""
    DESC = "timestamp desc"
    ASC = "timestamp asc"


class OutputFormat(str, Enum):
    """Rendering formats for log listings."""
    TEXT = "text"
    JSON = "json"
    TABLE = "table"


@dataclass
class HttpRequestInfo:
    """HTTP metadata attached to a request log."""
    method: Optional[str] = None
    url: Optional[str] = None
    status: Optional[int] = None
    response_size: Optional[int] = None
    user_agent: Optional[str] = None
    remote_ip: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "url": self.url,
            "status": self.status,
            "responseSize": self.response_size,
            "userAgent": self.user_agent,
            "remoteIp": self.remote_ip,
        }


@dataclass
class LogEntry:
    """Normalized log entry, independent of the Logging API types."""
    timestamp: str
    severity: str
    resource_type: str
    log_data: str = ""
    resource_labels: dict[str, str] = field(default_factory=dict)
    http_request: Optional[HttpRequestInfo] = None
    structured_data: Any = None
    labels: dict[str, str] = field(default_factory=dict)
    insert_id: Optional[str] = None
    log_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "severity": self.severity,
            "resourceType": self.resource_type,
            "resourceLabels": self.resource_labels,
            "httpRequest": self.http_request.to_dict() if self.http_request else None,
            "logData": self.log_data,
            "structuredData": self.structured_data,
            "labels": self.labels,
            "insertId": self.insert_id,
            "logName": self.log_name,
        }


@dataclass
class LogQueryOptions:
    """Options for a generic log query."""
    filter: Optional[str] = None
    resource_type: Optional[str] = None
    severity: Severity = Severity.DEFAULT
    time_range: Optional[str] = None
    limit: int = DEFAULT_LIMIT
    order_by: OrderBy = OrderBy.DESC
    page_token: Optional[str] = None

    @property
    def page_size(self) -> int:
        """Backend page size; the Logging API caps pages at 1000."""
        return min(self.limit, MAX_PAGE_SIZE)

    @classmethod
    def from_arguments(cls, arguments: dict[str, Any]) -> "LogQueryOptions":
        """Build options from get_logs tool arguments.

        Raises:
            ValueError: if an argument is outside its domain.
        """
        severity = arguments.get("severity") or Severity.DEFAULT.value
        try:
            severity = Severity(severity)
        except ValueError:
            allowed = ", ".join(s.value for s in Severity)
            raise ValueError(f"Invalid severity '{severity}'. Expected one of: {allowed}")

        order_by = arguments.get("orderBy") or OrderBy.DESC.value
        try:
            order_by = OrderBy(order_by)
        except ValueError:
            allowed = ", ".join(o.value for o in OrderBy)
            raise ValueError(f"Invalid orderBy '{order_by}'. Expected one of: {allowed}")

        limit = arguments.get("limit", DEFAULT_LIMIT)
        if isinstance(limit, bool) or not isinstance(limit, (int, float)) or int(limit) != limit:
            raise ValueError(f"limit must be an integer, got: {limit!r}")
        limit = int(limit)
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got: {limit}")

        return cls(
            filter=arguments.get("filter") or None,
            resource_type=arguments.get("resourceType") or None,
            severity=severity,
            time_range=arguments.get("timeRange") or None,
            limit=limit,
            order_by=order_by,
            page_token=arguments.get("pageToken") or None,
        )


@dataclass
class RawLogPage:
    """One backend response: raw record mappings plus the continuation token."""
    entries: list[dict[str, Any]]
    next_page_token: Optional[str] = None


@dataclass
class LogQueryResult:
    """Result of a single-page log query."""
    entries: list[LogEntry]
    query: str
    next_page_token: Optional[str] = None

    @property
    def total_count(self) -> int:
        return len(self.entries)


@dataclass
class AccumulatedLogs:
    """Result of an exhaustive multi-page fetch."""
    entries: list[LogEntry]
    pages_fetched: int
    truncated: bool = False
