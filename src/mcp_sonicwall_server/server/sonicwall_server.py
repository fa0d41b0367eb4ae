"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: SonicWall retrieval (events, threats, stats) and offline normalization
- Resources: dialect tables, the canonical event schema and sample lines
- Prompts: reusable triage templates that clients can invoke

Configuration comes from SONICWALL_* environment variables; the retrieval
client is built on first use so offline tools work without credentials.

Run locally (stdio):
    python -m mcp_sonicwall_server.server.sonicwall_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP

from mcp_sonicwall_server.core.client import RetrievalClient
from mcp_sonicwall_server.core.config import load_settings
from mcp_sonicwall_server.prompts.registry import register_prompts
from mcp_sonicwall_server.resources.registry import register_resources
from mcp_sonicwall_server.tools.firewall import (
    get_events_impl,
    get_stats_impl,
    get_threats_impl,
    normalize_log_file_impl,
    normalize_logs_impl,
    test_connectivity_impl,
)

LOGGER = logging.getLogger(__name__)

_client: RetrievalClient | None = None


def _configure_logging() -> None:
    """Configure logging on stderr; stdout carries the stdio protocol."""
    level_name = os.getenv("SONICWALL_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _get_client() -> RetrievalClient:
    """Return the process-wide retrieval client, building it on first use."""
    global _client
    if _client is None:
        settings = load_settings()
        LOGGER.info("Using %r", settings)
        _client = RetrievalClient.from_settings(settings)
        _client.cache.start_sweeper()
    return _client


mcp = FastMCP("sonicwall-logs", json_response=True)

register_resources(mcp)
register_prompts(mcp)


@mcp.tool()
async def get_events(
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    hours_lookback: float | None = None,
    category: str | None = None,
    source_address: str | None = None,
    dest_address: str | None = None,
    port: int | None = None,
    action: str | None = None,
    severities: Sequence[str] | None = None,
    limit: int | None = None,
    include_raw: bool = False,
) -> dict[str, Any]:
    """Return normalized firewall events from the appliance.

    Parameters
    ----------
    since/until:
        ISO-8601 datetimes (e.g., 2024-01-15T10:00:00Z). If timezone is omitted, UTC is assumed.
    date/hour/week/month:
        Convenience selectors that set a time window without exact timestamps.
        Examples:
          - date: 2024-01-15
          - hour: 2024-01-15T10
          - week: 2024-W03
          - month: 2024-01
    hours_lookback:
        Window length when no selector or since is given (default 24).
    category:
        One of firewall, vpn, ips, antivirus, system.
    source_address/dest_address:
        Exact address match.
    port:
        Matches either the source or the destination port.
    action:
        allow, deny, drop or reset.
    severities:
        Severity names (e.g., ["critical", "high"]). Case-insensitive.
    limit:
        Maximum number of events returned (hard-capped in the implementation).
    include_raw:
        Whether to include the original raw record in each event.

    Returns
    -------
    dict:
        {"count": int, "window": dict, "events": list[dict], "placeholder": bool}
    """
    return await get_events_impl(
        _get_client(),
        since=since,
        until=until,
        date=date,
        hour=hour,
        week=week,
        month=month,
        hours_lookback=hours_lookback,
        category=category,
        source_address=source_address,
        dest_address=dest_address,
        port=port,
        action=action,
        severities=severities,
        limit=limit,
        include_raw=include_raw,
    )


@mcp.tool()
async def get_threats(
    severities: Sequence[str] | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Return current threat detections (IPS, gateway antivirus, anti-spyware, ATP)."""
    return await get_threats_impl(_get_client(), severities=severities, limit=limit)


@mcp.tool()
async def get_stats(metric: str | None = None, limit: int | None = None) -> dict[str, Any]:
    """Return aggregate statistics.

    Parameters
    ----------
    metric:
        One of top_blocked_addresses, top_allowed_addresses, port_summary,
        threat_summary. Omit to get everything.
    limit:
        Maximum rows for a single metric.
    """
    return await get_stats_impl(_get_client(), metric=metric, limit=limit)


@mcp.tool()
async def test_connectivity() -> dict[str, Any]:
    """Authenticate against the appliance and report firmware version."""
    return await test_connectivity_impl(_get_client())


@mcp.tool()
def normalize_logs(
    lines: list[str],
    dialect: str = "7",
    include_raw: bool = True,
    include_stats: bool = False,
) -> dict[str, Any]:
    """Normalize raw SonicWall log lines without contacting an appliance.

    Parameters
    ----------
    lines:
        Raw syslog lines or JSON records, one per item.
    dialect:
        SonicOS major version, "7" or "8".
    include_stats:
        Also report which parser tier matched each line.
    """
    return normalize_logs_impl(
        lines=lines,
        dialect=dialect,
        include_raw=include_raw,
        include_stats=include_stats,
    )


@mcp.tool()
async def normalize_log_file(
    log_path: str,
    dialect: str = "7",
    severities: Sequence[str] | None = None,
    limit: int | None = None,
    include_raw: bool = False,
    include_ports: bool = False,
) -> dict[str, Any]:
    """Normalize a local syslog export (plain text or .gz), newest first."""
    return await normalize_log_file_impl(
        log_path=log_path,
        dialect=dialect,
        severities=severities,
        limit=limit,
        include_raw=include_raw,
        include_ports=include_ports,
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
