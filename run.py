"""
Entry point: run the scheduled-post publisher against Supabase.

Wires a Supabase-backed ``PostStore`` and runs its ``PublishingScheduler``
until interrupted.

Usage::

    python run.py            # run until Ctrl+C
    python run.py --once     # single promotion tick, then exit
    python run.py --audit-jsonl  # write audit events to Settings.audit_log_path
"""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("run")


async def main(once: bool = False, audit_jsonl: bool = False) -> None:
    from classboard.audit import AuditRecorder, JsonlAuditSink
    from classboard.config import get_settings
    from classboard.database import (
        SupabaseAuditSink,
        SupabaseClassNameResolver,
        SupabasePostRepository,
        create_supabase_client,
    )
    from classboard.notifications import EdgeFunctionNotificationGenerator
    from classboard.scheduler import PublishingScheduler
    from classboard.store import PostStore

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    client = await create_supabase_client()
    if audit_jsonl:
        audit_sink = JsonlAuditSink(settings.audit_log_path)
        logger.info("Writing audit events to %s", settings.audit_log_path)
    else:
        audit_sink = SupabaseAuditSink(client)

    store = PostStore(
        repository=SupabasePostRepository(client),
        audit=AuditRecorder(
            audit_sink,
            class_name_resolver=SupabaseClassNameResolver(client),
            sensitive_terms=settings.sensitive_terms,
            masked_marker=settings.masked_marker,
        ),
        notifications=EdgeFunctionNotificationGenerator(
            client, function_name=settings.notification_function
        ),
        settings=settings,
    )
    scheduler = PublishingScheduler(store, settings=settings)

    try:
        if once:
            promoted = await scheduler.run_once()
            logger.info("Promoted %d scheduled posts", len(promoted))
            return

        await scheduler.start()
    finally:
        await store.dispose()
        # Let queued notifications and audit writes finish
        await store.outbox.drain()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single promotion tick and exit",
    )
    parser.add_argument(
        "--audit-jsonl",
        action="store_true",
        help="Append audit events to the local JSONL log instead of Supabase",
    )
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    try:
        asyncio.run(main(once=args.once, audit_jsonl=args.audit_jsonl))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(0)
