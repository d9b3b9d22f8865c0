"""
CLI arguments for tool filtering.

Usage:
    cloudrun-mcp --enabled-tools list_services,get_service_log
    cloudrun-mcp --disabled-tools deploy_local_folder
"""

import argparse
from dataclasses import dataclass
from typing import Optional, Sequence

from .config import ConfigurationError


@dataclass(frozen=True)
class ToolFilterConfig:
    """Enabled/disabled tool lists; at most one may be non-empty."""
    enabled_tools: Optional[list[str]] = None
    disabled_tools: Optional[list[str]] = None

    def __post_init__(self):
        if self.enabled_tools and self.disabled_tools:
            raise ConfigurationError(
                "Cannot specify both --enabled-tools and --disabled-tools. Please use only one."
            )


def split_tool_list(value: Optional[str]) -> Optional[list[str]]:
    """Split a comma-separated flag value; None when nothing is left."""
    if not value:
        return None
    tools = [t.strip() for t in value.split(",")]
    tools = [t for t in tools if t]
    return tools or None


def build_parser(add_help: bool = True) -> argparse.ArgumentParser:
    """Parser for the tool filtering flags; add_help=False to use it as a parent."""
    parser = argparse.ArgumentParser(
        description="Cloud Run MCP server",
        prog="cloudrun-mcp",
        add_help=add_help,
    )
    parser.add_argument(
        "--enabled-tools", "--enabled_tools",
        dest="enabled_tools",
        help="Comma-separated list of tools to register (all others are skipped)",
    )
    parser.add_argument(
        "--disabled-tools", "--disabled_tools",
        dest="disabled_tools",
        help="Comma-separated list of tools to skip",
    )
    return parser


def parse_cli_args(argv: Optional[Sequence[str]] = None) -> ToolFilterConfig:
    """
    Parse tool filtering flags.

    Options this parser does not know (transport, host, ...) are left for
    the server entrypoint.

    Raises:
        ConfigurationError: if both lists are given.
    """
    args, _ = build_parser().parse_known_args(argv)
    return ToolFilterConfig(
        enabled_tools=split_tool_list(args.enabled_tools),
        disabled_tools=split_tool_list(args.disabled_tools),
    )
