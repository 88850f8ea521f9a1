#!/usr/bin/env python3
"""Replay a recorded push-event stream into a catalogue.

Feeds a captured ``text/event-stream`` body through the decoder and router,
prints the resulting sections, and optionally persists them to a cache
directory so restore behaviour can be inspected offline.

Usage
-----
::

    python scripts/replay_stream.py capture.txt --country CN --admin-area Guangdong --locality Shenzhen
    python scripts/replay_stream.py capture.txt --locality Shenzhen --country CN --cache-dir /tmp/gc --persist

Options::

    --previous-*         Location the catalogue was on before the replay
                         (pruning compares against it)
    --chunk-size N       Feed the capture in N-byte chunks (default: 64)
    --verbose / -v       Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from geocatalogue import CatalogueFileCache, CatalogueManager, EventRouter, LocationContext, aiter_events  # noqa: E402

MAX_VAL_WIDTH = 60


def _truncate(val: object, width: int = MAX_VAL_WIDTH) -> str:
    s = json.dumps(val, ensure_ascii=False) if not isinstance(val, str) else val
    if len(s) <= width:
        return s
    return s[: width - 3] + "..."


def _location(args: argparse.Namespace, prefix: str = "") -> LocationContext | None:
    values = {
        "country_code": getattr(args, f"{prefix}country"),
        "admin_area": getattr(args, f"{prefix}admin_area"),
        "locality": getattr(args, f"{prefix}locality"),
        "sub_locality": getattr(args, f"{prefix}sub_locality"),
    }
    if not any(values.values()):
        return None
    return LocationContext(**values)


async def _chunks(data: bytes, size: int) -> AsyncIterator[bytes]:
    for start in range(0, len(data), size):
        yield data[start : start + size]


async def _replay(args: argparse.Namespace) -> int:
    location = _location(args)
    if location is None:
        print("A location is required (at least --country).", file=sys.stderr)
        return 2

    cache = CatalogueFileCache(args.cache_dir) if args.cache_dir else None
    manager = CatalogueManager(persistence=cache)
    previous = _location(args, "previous_")
    if previous is not None:
        manager.set_location(previous)
        if cache is not None:
            await manager.restore_from_cache(previous)

    report = manager.change_location(location)
    restored = await manager.restore_from_cache(location)

    router = EventRouter(
        catalogue=manager,
        on_notification=lambda n: print(f"[notification] {n.message}"),
        on_finish=lambda f: print(f"[finish] {len(f.text)} chars of text"),
    )
    data = Path(args.capture).read_bytes()
    stats = await router.consume(aiter_events(_chunks(data, max(1, args.chunk_size))))

    print()
    print(f"Pruned levels: {[level.identifier for level in report.stale_levels]} cleared={report.cleared}")
    print(f"Restored from cache: {restored} section(s)")
    print(f"Events: dispatched={stats.dispatched} skipped={stats.skipped} ignored={stats.ignored}")
    print()

    for section in manager.ordered_sections():
        print(f"{section.display_title} ({section.section_type})")
        print("─" * 40)
        if isinstance(section.content, dict):
            for key, value in section.content.items():
                print(f"  {key:<24} {_truncate(value)}")
        else:
            print(f"  {_truncate(section.content)}")
        print()

    if args.persist:
        if cache is None:
            print("--persist needs --cache-dir", file=sys.stderr)
            return 2
        manager.persist_current_state(location)
        await manager.wait_for_pending_writes()
        print(f"Persisted to {cache.root}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay a captured catalogue event stream.")
    parser.add_argument("capture", help="File holding a raw text/event-stream body")
    for prefix, label in (("", "Location"), ("previous-", "Previous location")):
        parser.add_argument(f"--{prefix}country", help=f"{label} country code")
        parser.add_argument(f"--{prefix}admin-area", help=f"{label} admin area")
        parser.add_argument(f"--{prefix}locality", help=f"{label} locality")
        parser.add_argument(f"--{prefix}sub-locality", help=f"{label} sub-locality")
    parser.add_argument("--cache-dir", type=Path, help="Catalogue cache directory")
    parser.add_argument("--persist", action="store_true", help="Persist the replayed catalogue")
    parser.add_argument("--chunk-size", type=int, default=64, help="Bytes per simulated network chunk")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    raise SystemExit(asyncio.run(_replay(args)))


if __name__ == "__main__":
    main()
