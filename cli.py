"""Command line entry points for imports, upkeep jobs and the HTTP server."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from config.settings import LOG_LEVEL, RECENT_MAX_EXECUTION_SECONDS, SERVER_HOST, SERVER_PORT

logger = logging.getLogger(__name__)


def _print_event(event) -> None:
    print(event.to_json(), flush=True)


def _import_channel(args: argparse.Namespace) -> int:
    from importer import ChannelImportError, ImportOptions, build_channel_importer
    from importer.progress import CallbackSink

    options = ImportOptions(
        channel_handle=args.handle,
        limit=args.limit,
        include_live_videos=args.include_live,
        skip_transcripts=args.skip_transcripts,
        transcripts_only=args.transcripts_only,
        tenant_id=args.tenant_id,
        generate_embeddings=not args.no_embeddings,
    )
    try:
        summary = build_channel_importer().import_channel(options, CallbackSink(_print_event))
    except ChannelImportError as exc:
        logger.error("Import failed: %s", exc)
        return 1
    logger.info(
        "Imported %s videos and %s transcripts for %s",
        summary.videos_processed,
        summary.transcripts_downloaded,
        args.handle,
    )
    return 0


def _import_recent(args: argparse.Namespace) -> int:
    from importer import Deadline, build_recent_importer
    from importer.progress import CallbackSink

    deadline = Deadline(args.max_seconds) if args.max_seconds else Deadline.unlimited()
    result = build_recent_importer().run(CallbackSink(_print_event), deadline)
    print(json.dumps(result.as_payload(), indent=2))
    return 0


def _process_transcript_jobs(args: argparse.Namespace) -> int:
    from catalog import get_catalog_store
    from services.transcript_jobs import TranscriptJobProcessor
    from sources.transcripts import SupadataTranscriptClient

    counts = TranscriptJobProcessor(get_catalog_store(), SupadataTranscriptClient()).process_pending()
    print(json.dumps(counts, indent=2))
    return 0


def _refresh_search_index(args: argparse.Namespace) -> int:
    from catalog import get_catalog_store
    from importer.channel_import import refresh_search_index

    store = get_catalog_store()
    if args.video_ids:
        return 0 if refresh_search_index(store, args.video_ids) else 1
    print(json.dumps(store.rebuild_search_index(), indent=2, default=str))
    return 0


def _recheck_quality(args: argparse.Namespace) -> int:
    from catalog import get_catalog_store
    from services.transcript_quality import recheck_quality

    summary = recheck_quality(get_catalog_store(), video_id=args.video_id, channel_id=args.channel_id)
    print(json.dumps(summary, indent=2))
    return 0 if summary["errors"] == 0 else 1


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from server import build_app

    uvicorn.run(build_app(), host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="channel-import", description=__doc__)
    parser.add_argument("--log-level", default=LOG_LEVEL)
    subcommands = parser.add_subparsers(dest="command", required=True)

    channel = subcommands.add_parser("import-channel", help="Import one channel, streaming NDJSON progress")
    channel.add_argument("handle")
    channel.add_argument("--limit", type=int, default=None)
    channel.add_argument("--include-live", action="store_true")
    channel.add_argument("--skip-transcripts", action="store_true")
    channel.add_argument("--transcripts-only", action="store_true")
    channel.add_argument("--tenant-id", default=None)
    channel.add_argument("--no-embeddings", action="store_true")
    channel.set_defaults(handler=_import_channel)

    recent = subcommands.add_parser("import-recent", help="Import recent uploads across all channels")
    recent.add_argument("--max-seconds", type=float, default=RECENT_MAX_EXECUTION_SECONDS)
    recent.set_defaults(handler=_import_recent)

    jobs = subcommands.add_parser("process-transcript-jobs", help="Poll pending async transcript jobs")
    jobs.set_defaults(handler=_process_transcript_jobs)

    index = subcommands.add_parser("refresh-search-index", help="Refresh the transcript search index")
    index.add_argument("video_ids", nargs="*", help="Refresh only these catalog video ids")
    index.set_defaults(handler=_refresh_search_index)

    quality = subcommands.add_parser("recheck-quality", help="Recompute transcript quality flags")
    target = quality.add_mutually_exclusive_group(required=True)
    target.add_argument("--video-id")
    target.add_argument("--channel-id")
    quality.set_defaults(handler=_recheck_quality)

    serve = subcommands.add_parser("serve", help="Run the admin HTTP server")
    serve.add_argument("--host", default=SERVER_HOST)
    serve.add_argument("--port", type=int, default=SERVER_PORT)
    serve.set_defaults(handler=_serve)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    # progress lines go to stdout, logs to stderr
    logging.basicConfig(level=args.log_level, stream=sys.stderr)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
