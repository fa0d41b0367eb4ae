from __future__ import annotations

import pytest
from conftest import NOW
from mcp.server.fastmcp import FastMCP

from mcp_sonicwall_server.core.engine import LogNormalizer
from mcp_sonicwall_server.core.models import Dialect
from mcp_sonicwall_server.prompts.registry import _format_list, register_prompts
from mcp_sonicwall_server.resources.registry import SAMPLE_LINES, register_resources


@pytest.mark.parametrize("dialect", list(Dialect))
def test_sample_lines_match_dialect_parsers(dialect: Dialect) -> None:
    stats = LogNormalizer(dialect, clock=lambda: NOW).parsing_stats(list(SAMPLE_LINES[dialect]))
    assert stats.fallback == 0
    assert stats.matched == len(SAMPLE_LINES[dialect])


def test_format_list() -> None:
    assert _format_list("Critical, high,") == '["critical", "high"]'
    assert _format_list(["HIGH"]) == '["high"]'
    assert _format_list([]) == "[]"


@pytest.mark.asyncio
async def test_registries_attach_to_server() -> None:
    mcp = FastMCP("sonicwall-logs-test")
    register_resources(mcp)
    register_prompts(mcp)

    prompts = {p.name for p in await mcp.list_prompts()}
    resources = {str(r.uri) for r in await mcp.list_resources()}

    assert prompts == {"triage_firewall", "investigate_address"}
    assert "app://sonicwall/help" in resources
