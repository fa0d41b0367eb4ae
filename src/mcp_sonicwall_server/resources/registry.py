"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import TypeAdapter

from mcp_sonicwall_server.core.dialects import profile_for
from mcp_sonicwall_server.core.models import CanonicalEvent, Dialect

SAMPLE_LINES: dict[Dialect, tuple[str, ...]] = {
    Dialect.V7: (
        'Jan 15 10:30:00 fw01 id=firewall sn=C0EAE4 time="2024-01-15 10:30:00 UTC" fw=203.0.113.1 '
        'pri=1 c=3 m="Suspicious payload observed" src=10.0.0.5:51515:X0 dst=198.51.100.7:443:X1 proto=tcp/https',
        'Jan 15 10:31:00 fw01 VPN user="alice" src=203.0.113.9 dst=10.0.0.1 result=success msg="Tunnel established"',
        'Jan 15 10:32:00 fw01 IPS pri=2 src=198.51.100.23:4444 dst=10.0.0.8:445 sig=SMB-EXPLOIT msg="SMB exploit attempt"',
        "2024-01-15T10:33:00Z fw01 DENY SRC=192.0.2.10 DST=10.0.0.9 PROTO=TCP SPT=51000 DPT=3389",
    ),
    Dialect.V8: (
        "2024-01-15T10:30:00Z fw02 CAPTURE analysis_time=42 file_type=exe "
        'threat_name="Trojan.Agent" src=10.0.0.5 dst=198.51.100.7 disposition=malicious',
        "2024-01-15T10:31:00Z fw02 ATP threat_type=malware severity=high src=203.0.113.5 "
        'dst=10.0.0.12 verdict=block msg="Known C2 callback"',
        '2024-01-15T10:32:00Z fw02 id=firewall sn=C0EAE4 time="2024-01-15 10:32:00 UTC" fw=203.0.113.1 '
        'pri=6 c=1 m="Connection allowed" src=10.0.0.5:51515 dst=93.184.216.34:443 proto=tcp/https '
        "cloud_id=cm-01 tenant_id=t-42",
    ),
}


def register_resources(mcp: FastMCP) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://sonicwall/help")
    def help_resource() -> str:
        """Return a short list of available resource URIs."""
        return (
            "Resources:\n"
            "- app://sonicwall/help\n"
            "- app://sonicwall/dialects/{version} (endpoint and query tables; version 7 or 8)\n"
            "- app://sonicwall/schemas/canonical-event\n"
            "- app://sonicwall/examples/{version} (sample log lines)\n"
            "\nTools: get_events, get_threats, get_stats, test_connectivity, "
            "normalize_logs, normalize_log_file\n"
        )

    @mcp.resource("app://sonicwall/dialects/{version}")
    def dialect_profile(version: str) -> dict[str, Any]:
        """Return the endpoint, header and query-parameter table for a dialect."""
        profile = profile_for(version)
        return {
            "dialect": profile.dialect.value,
            "api_version": profile.api_version,
            "endpoints": asdict(profile.endpoints),
            "log_params": asdict(profile.log_params),
            "extra_log_params": dict(profile.extra_log_params),
            "carries_session_id": profile.carries_session_id,
        }

    @mcp.resource("app://sonicwall/schemas/canonical-event")
    def canonical_event_schema() -> dict[str, Any]:
        """Return the JSON schema for normalized events."""
        return TypeAdapter(CanonicalEvent).json_schema()

    @mcp.resource("app://sonicwall/examples/{version}")
    def sample_lines(version: str) -> str:
        """Return sample raw lines for a dialect, for demos and tests."""
        return "\n".join(SAMPLE_LINES[Dialect.parse(version)]) + "\n"
