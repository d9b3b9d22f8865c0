"""
Safe logging utilities for the Cloud Run MCP server.

Provides logging that:
- Writes to stderr only (stdout carries the stdio MCP transport)
- Redacts credentials (OAuth tokens, API keys, private keys)
- Respects log levels from environment
"""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import Optional


# Patterns for sensitive data that should be redacted
# SECURITY: Add new patterns as new token formats are discovered
SENSITIVE_PATTERNS = [
    # Generic key=value patterns
    (r'(password|passwd|pwd)["\']?\s*[:=]\s*["\']?[^"\'\s,}]+', r'\1=***'),
    (r'(token|api_key|apikey|secret|private_key|client_secret)["\']?\s*[:=]\s*["\']?[^"\'\s,}]+', r'\1=***'),
    # HTTP headers
    (r'Bearer\s+[A-Za-z0-9\-_.]+', 'Bearer ***'),
    (r'(Authorization|X-Goog-Api-Key):\s*\S+', r'\1: ***'),
    # Google credentials
    (r'ya29\.[A-Za-z0-9_-]+', 'ya29.***'),                  # OAuth access token
    (r'1//[A-Za-z0-9_-]{20,}', '1//***'),                   # OAuth refresh token
    (r'AIza[A-Za-z0-9_-]{35}', 'AIza***'),                  # API key
    (r'[0-9]+-[A-Za-z0-9_]{32}\.apps\.googleusercontent\.com', '***-***.apps.googleusercontent.com'),
    (r'-----BEGIN [A-Z ]*PRIVATE KEY-----', '-----BEGIN *** PRIVATE KEY-----'),
]

_SENSITIVE_PATTERNS = [
    (re.compile(pattern, re.IGNORECASE), replacement)
    for pattern, replacement in SENSITIVE_PATTERNS
]


class SafeFormatter(logging.Formatter):
    """Formatter that redacts sensitive information."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        return sanitize_message(message)


def sanitize_message(message: str) -> str:
    """Remove sensitive data from log message."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def get_safe_logger(
    name: str,
    level: Optional[str] = None,
) -> logging.Logger:
    """
    Get a logger that sanitizes sensitive data.

    Args:
        name: Logger name (usually __name__)
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to env LOG_LEVEL or INFO.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        if level is None:
            level = os.environ.get('LOG_LEVEL', 'INFO').upper()

        numeric_level = getattr(logging, level, logging.INFO)
        logger.setLevel(numeric_level)

        # stderr: stdout belongs to the stdio transport
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(numeric_level)

        formatter = SafeFormatter(
            '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)

        logger.addHandler(handler)
        logger.propagate = False

    return logger
