from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence

from mcp_sonicwall_server.core.client import RetrievalClient
from mcp_sonicwall_server.core.config import load_settings
from mcp_sonicwall_server.core.log_files import normalize_log_file
from mcp_sonicwall_server.core.models import Dialect, Severity


def _parse_severities(s: str) -> list[Severity]:
    out: list[Severity] = []
    for part in s.split(","):
        name = part.strip().lower()
        if not name:
            continue
        try:
            out.append(Severity(name))
        except ValueError as e:
            raise argparse.ArgumentTypeError(
                "Invalid severity. Allowed: critical, high, medium, low, info"
            ) from e
    if not out:
        raise argparse.ArgumentTypeError("At least one severity must be provided")
    return out


def _parse_dialect(s: str) -> Dialect:
    try:
        return Dialect.parse(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


async def _check() -> dict:
    client = RetrievalClient.from_settings(load_settings())
    try:
        return await client.test_connectivity()
    finally:
        await client.aclose()


def _cmd_normalize(args: argparse.Namespace) -> int:
    events = asyncio.run(normalize_log_file(args.log_path, args.dialect, max_lines=args.max_lines))
    if args.severities:
        events = [e for e in events if e.severity in args.severities]
    for e in events:
        src = f"{e.source_address}:{e.source_port}" if e.source_port is not None else e.source_address
        dst = f"{e.dest_address}:{e.dest_port}" if e.dest_port is not None else e.dest_address
        print(f"{e.timestamp.isoformat()} [{e.severity.value}] {e.action.value} {src} -> {dst} {e.message}")
    print(f"\nNormalized {len(events)} events.")
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    out = asyncio.run(_check())
    print(json.dumps(out, indent=2))
    return 0 if out["success"] else 1


def main(argv: Sequence[str] | None = None) -> None:
    """CLI for local normalization and appliance connectivity checks."""
    p = argparse.ArgumentParser(description="SonicWall log normalization and connectivity checks.")
    sub = p.add_subparsers(dest="command", required=True)

    norm = sub.add_parser("normalize", help="Normalize a local syslog export (plain or .gz)")
    norm.add_argument("log_path")
    norm.add_argument("--dialect", type=_parse_dialect, default=Dialect.V7, help="SonicOS version: 7 or 8")
    norm.add_argument(
        "--severities",
        type=_parse_severities,
        default=None,
        help="Comma-separated (e.g., critical,high). Default: all",
    )
    norm.add_argument("--max-lines", type=int, default=None, help="Stop reading after N lines")
    norm.set_defaults(func=_cmd_normalize)

    check = sub.add_parser("check", help="Authenticate using SONICWALL_* settings and read system info")
    check.set_defaults(func=_cmd_check)

    args = p.parse_args(argv)
    try:
        code = args.func(args)
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(2)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)
    raise SystemExit(code)


if __name__ == "__main__":
    main()
