"""MCP prompt registry.

Prompts are predefined conversation/workflow templates that the client can invoke explicitly.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP


def _format_list(values: Sequence[str] | str) -> str:
    """Return values as a JSON array literal for prompt display."""
    if isinstance(values, str):
        items = [s.strip().lower() for s in values.split(",") if s.strip()]
    else:
        items = [str(s).strip().lower() for s in values if str(s).strip()]
    if not items:
        return "[]"
    quoted = ", ".join(f'"{item}"' for item in items)
    return f"[{quoted}]"


_PLACEHOLDER_RULE = (
    "- If a tool result has placeholder=true, the appliance was unreachable and the data is "
    "synthetic. Say so explicitly and do not draw conclusions from it.\n"
)


def register_prompts(mcp: FastMCP) -> None:
    """Register prompt templates on the MCP server."""

    @mcp.prompt()
    def triage_firewall(
        hours_lookback: int = 24,
        severities: Sequence[str] | str = ("critical", "high"),
    ) -> list[dict[str, Any]]:
        """Build a prompt for firewall event triage."""
        return [
            {
                "role": "system",
                "content": (
                    "You are a senior network security analyst. Provide concise, evidence-based "
                    "summaries of firewall telemetry. Do not invent details; if the evidence is "
                    "insufficient, say so."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Triage recent SonicWall activity. Follow this workflow:\n"
                    f"- Call get_events with hours_lookback={hours_lookback}, "
                    f"severities={_format_list(severities)} and include_raw=true.\n"
                    "- Call get_threats, then get_stats with metric=top_blocked_addresses.\n"
                    f"{_PLACEHOLDER_RULE}"
                    "- Quote raw lines as evidence; never fabricate them.\n\n"
                    "Return this structure:\n"
                    "1) What happened (1-3 bullets)\n"
                    "2) Evidence (2-5 events: timestamp, action, source -> destination, rule)\n"
                    "3) Most active sources (addresses with counts)\n"
                    "4) Next actions (2-4 bullets, e.g., rule changes or hosts to isolate)\n"
                ),
            },
        ]

    @mcp.prompt()
    def investigate_address(address: str, hours_lookback: int = 24) -> list[dict[str, Any]]:
        """Build a prompt that investigates one address across events and threats."""
        return [
            {
                "role": "system",
                "content": (
                    "You are a precise incident responder. Correlate firewall events and threat "
                    "detections for a single host."
                ),
            },
            {
                "role": "user",
                "content": (
                    f"Investigate {address} over the last {hours_lookback} hours.\n"
                    f"- Call get_events twice: once with source_address={address}, once with "
                    f"dest_address={address}; include_raw=true.\n"
                    "- Call get_threats and keep detections involving the address.\n"
                    f"{_PLACEHOLDER_RULE}"
                    "- Summarize: role of the host (attacker, victim, both), blocked vs allowed "
                    "traffic, ports involved, and a recommended containment step.\n"
                ),
            },
        ]
