"""Kindred command-line entry point.

Usage::

    python -m kindred.main ingest notes.txt --persona grandma --source text
    python -m kindred.main chat --persona grandma --name "Grandma Rose"
    python -m kindred.main summary --persona grandma
    python -m kindred.main forget mem_0123456789abcdef
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from kindred.config import settings
from kindred.memory.models import MemorySource
from kindred.persona import PersonaProfile

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kindred", description=__doc__.splitlines()[0])
    parser.add_argument("--db", type=Path, default=None, help="Local database file")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Extract memories from a content file")
    ingest.add_argument("file", type=Path)
    ingest.add_argument("--persona", required=True)
    ingest.add_argument(
        "--source", default="text", choices=[s.value for s in MemorySource]
    )
    ingest.add_argument("--ref", default=None, help="Source reference (defaults to the path)")

    chat = sub.add_parser("chat", help="Talk to a persona in the terminal")
    chat.add_argument("--persona", required=True)
    chat.add_argument("--name", default=None)
    chat.add_argument("--relationship", default=None)

    summary = sub.add_parser("summary", help="Show a persona's memory summary")
    summary.add_argument("--persona", required=True)

    forget = sub.add_parser("forget", help="Delete one memory")
    forget.add_argument("memory_id")
    return parser


# -- Commands ----------------------------------------------------------------


async def _ingest(args: argparse.Namespace) -> int:
    from kindred.service import build_service

    service = build_service(args.db)
    content = args.file.read_text(encoding="utf-8")
    memories = await service.ingest(
        args.persona, content, args.source, args.ref or str(args.file)
    )
    print(f"Stored {len(memories)} memories for {args.persona}")
    for memory in memories:
        print(f"  {memory.id} [{memory.type}] {memory.importance:.2f}  {memory.content[:70]}")
    return 0


async def _chat(args: argparse.Namespace) -> int:
    from kindred.service import build_service

    fields = {"name": args.name, "relationship": args.relationship}
    profile = PersonaProfile(id=args.persona, **{k: v for k, v in fields.items() if v})

    service = build_service(args.db)
    session_id = service.start_session(args.persona, profile)
    print(f"Talking to {profile.name}. Empty line or Ctrl-D to stop.")
    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "you> ")
            except EOFError:
                break
            if not line.strip():
                break
            response = await service.submit_user_turn(session_id, line)
            if response is None or response.cancelled:
                continue
            marker = " (offline)" if response.degraded else ""
            print(f"{profile.name}{marker}> {response.text}")
            if response.audio_ref:
                print(f"  audio: {response.audio_ref}")
    finally:
        await service.aclose()
    return 0


async def _summary(args: argparse.Namespace) -> int:
    from kindred.service import build_service

    service = build_service(args.db)
    summary = await service.get_memory_summary(args.persona)
    print(f"{args.persona}: {summary.total_memories} memories")
    for name, count in sorted(summary.counts_by_type.items()):
        print(f"  type   {name:<14} {count}")
    for name, count in sorted(summary.counts_by_source.items()):
        print(f"  source {name:<14} {count}")
    if summary.recent_memories:
        print("Most recent:")
        for memory in summary.recent_memories:
            print(f"  {memory.id} {memory.content[:70]}")
    return 0


async def _forget(args: argparse.Namespace) -> int:
    from kindred.memory.store import MemoryStore

    if await MemoryStore(db_path=args.db).delete(args.memory_id):
        print(f"Deleted {args.memory_id}")
        return 0
    print(f"No memory with id {args.memory_id}", file=sys.stderr)
    return 1


_COMMANDS = {
    "ingest": _ingest,
    "chat": _chat,
    "summary": _summary,
    "forget": _forget,
}


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and run the chosen command."""
    args = build_parser().parse_args(argv)
    logger.debug("Running %s", args.command)
    return asyncio.run(_COMMANDS[args.command](args))


if __name__ == "__main__":
    sys.exit(main())
