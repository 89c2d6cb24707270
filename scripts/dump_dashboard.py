#!/usr/bin/env python3
"""Dump everything the pairsync library can fetch.

Calls every read operation once, printing the parsed model fields
**and** the raw records so you can spot legacy fields that are not
normalized yet.

Usage
-----
Set environment variables and run::

    export PAIRSYNC_API_URL="http://bot.local:8080"
    export PAIRSYNC_STORE_URL="http://store.local:8081"
    python scripts/dump_dashboard.py

Options::

    --json               Output as machine-readable JSON
    --output FILE        Write output to FILE instead of stdout
    --skip-trades        Skip trades
    --skip-account       Skip account summary
    --skip-pairs         Skip correlation pairs
    --skip-events        Skip bot events
    --skip-performance   Skip performance history
    --skip-dashboard     Skip the dashboard aggregate
    --skip-health        Skip health check and remote sync status
    --watch-events SECS  After the dump, print live bot event snapshots for SECS
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import traceback
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pairsync import DashboardClient, PairsyncConfig, PairsyncError  # noqa: E402

SKIPPABLE = ("trades", "account", "pairs", "events", "performance", "dashboard", "health")

# ── helpers ──────────────────────────────────────────────────


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _format_field(key: str, value: Any, indent: int = 2) -> str:
    prefix = " " * indent
    if isinstance(value, list):
        if not value:
            return f"{prefix}{key}: []"
        return f"{prefix}{key}: <list with {len(value)} items>"
    if isinstance(value, dict):
        return f"{prefix}{key}: <dict with {len(value)} keys>"
    return f"{prefix}{key}: {value}"


def _print_model(name: str, obj: BaseModel, out: list[str]) -> dict[str, Any]:
    """Pretty-print a model and return its dict form (without ``raw``)."""
    out.append(f"\n  ── {name} ──")
    d = obj.model_dump()
    for key, value in d.items():
        out.append(_format_field(key, value))
    return d


def _print_raw(name: str, raw: Any, out: list[str]) -> None:
    out.append(f"\n  ── {name} (raw) ──")
    out.append(json.dumps(raw, indent=2, default=str, ensure_ascii=False))


def _as_models(value: Any) -> list[BaseModel]:
    if isinstance(value, BaseModel):
        return [value]
    return [item for item in value if isinstance(item, BaseModel)]


# ── main ─────────────────────────────────────────────────────


async def dump_entity(
    name: str,
    fetch: Callable[[], Awaitable[Any]],
    out: list[str],
) -> dict[str, Any]:
    out.append(_section(name.upper()))
    try:
        value = await fetch()
    except Exception as exc:
        out.append(f"  !! {name} failed: {exc}")
        return {"error": str(exc), "traceback": traceback.format_exc()}

    entries: list[dict[str, Any]] = []
    for index, model in enumerate(_as_models(value)):
        parsed = _print_model(f"{name}[{index}]", model, out)
        raw = getattr(model, "raw", None)
        if raw:
            _print_raw(f"{name}[{index}]", raw, out)
        entries.append({"parsed": parsed, "raw": raw})
    if not entries:
        out.append("  (empty)")
    return {"items": entries}


async def watch_events(client: DashboardClient, seconds: float, out: list[str]) -> list[dict[str, Any]]:
    """Collect live event snapshots for *seconds*; stops early on a feed error."""
    out.append(_section(f"LIVE BOT EVENTS ({seconds:g}s)"))
    snapshots: list[dict[str, Any]] = []

    async def _collect() -> None:
        async for events in client.watch_bot_events(limit=5):
            stamp = datetime.now(UTC).isoformat()
            out.append(f"  {stamp}  {', '.join(f'{e.type}@{e.timestamp}' for e in events) or '(none)'}")
            snapshots.append({"received": stamp, "events": [e.model_dump() for e in events]})

    try:
        await asyncio.wait_for(_collect(), timeout=seconds)
    except TimeoutError:
        out.append(f"  (watch window of {seconds:g}s ended)")
    except PairsyncError as exc:
        out.append(f"  !! live feed failed: {exc}")
    return snapshots


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Print every read the pairsync client can make.")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="print JSON instead of text")
    parser.add_argument("--output", "-o", metavar="FILE", help="also write the JSON result to FILE")
    for name in SKIPPABLE:
        parser.add_argument(f"--skip-{name}", action="store_true", help=f"do not fetch {name}")
    parser.add_argument("--watch-events", type=float, metavar="SECS", default=0.0, help="stream live bot events")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return parser


def _emit(result: dict[str, Any], out: list[str], *, json_mode: bool, output: str | None) -> None:
    payload = json.dumps(result, indent=2, default=str, ensure_ascii=False)
    print(payload if json_mode else "\n".join(out))
    if output:
        Path(output).write_text(payload, encoding="utf-8")
        print(f"wrote {output}", file=sys.stderr)


async def main() -> None:
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = PairsyncConfig.from_env(live_enabled=args.watch_events > 0)
    started = datetime.now(UTC).isoformat()
    result: dict[str, Any] = {"started": started, "api_url": config.api_url, "store_url": config.store_url}
    out = [
        _section("pairsync dump_dashboard"),
        f"  started : {started}",
        f"  api     : {config.api_url}",
        f"  store   : {config.store_url}",
    ]

    entities: dict[str, Any] = {}
    async with DashboardClient(config) as client:
        plan: list[tuple[str, str, Callable[[], Awaitable[Any]]]] = [
            ("trades", "trades", client.fetch_trades),
            ("account", "account summary", client.fetch_account_summary),
            ("pairs", "correlation pairs", client.fetch_correlation_pairs),
            ("events", "bot events", client.fetch_bot_events),
            ("performance", "performance history", client.fetch_performance_history),
            ("dashboard", "dashboard", client.fetch_dashboard_data),
            ("health", "bot health", client.check_bot_health),
            ("health", "remote sync status", client.fetch_sync_status),
        ]
        for switch, name, fetch in plan:
            if not getattr(args, f"skip_{switch}"):
                entities[name] = await dump_entity(name, fetch, out)
        if args.watch_events > 0:
            result["live_events"] = await watch_events(client, args.watch_events, out)

    result["entities"] = entities
    _emit(result, out, json_mode=args.json_mode, output=args.output)


if __name__ == "__main__":
    asyncio.run(main())
