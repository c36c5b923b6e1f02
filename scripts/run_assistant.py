#!/usr/bin/env python3
"""Command-line front end for the research assistant."""

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from scholar.agents.chat import ask, load_records, summarize_context
from scholar.agents.completion import CompletionDispatcher
from scholar.agents.models import AIModelInput, AIModelUpdate
from scholar.agents.providers import default_providers
from scholar.agents.uploader import upload_batch
from scholar.core.config import Settings, load_settings
from scholar.core.database import ResearchDatabase
from scholar.core.errors import ScholarError
from scholar.exporters import export_batch, export_search
from scholar.search.firecrawl import PaperSearchService

logger = logging.getLogger("assistant")


# ── Commands ─────────────────────────────────────────────────────────


def cmd_models(args, db: ResearchDatabase, settings: Settings) -> int:
    dispatcher = CompletionDispatcher(db, default_providers(settings.request_timeout))

    if args.action == "list":
        for m in db.list_ai_models():
            marker = "*" if m.is_default else " "
            print(f"{marker} [{m.id}] {m.name} — {m.provider}/{m.model_name}")
        return 0

    if args.action == "add":
        model = db.add_ai_model(
            AIModelInput(
                name=args.name,
                provider=args.provider,
                api_key=args.api_key,
                base_url=args.base_url,
                model_name=args.model_name,
            )
        )
        print(f"Added model {model.id}{' (default)' if model.is_default else ''}")
        return 0

    if args.action == "update":
        fields = {
            k: v
            for k, v in {
                "name": args.name,
                "provider": args.provider,
                "api_key": args.api_key,
                "base_url": args.base_url,
                "model_name": args.model_name,
            }.items()
            if v is not None
        }
        db.update_ai_model(args.id, AIModelUpdate(**fields))
        print(f"Updated model {args.id}")
        return 0

    if args.action == "delete":
        if not db.delete_ai_model(args.id):
            logger.error("Model %d not found", args.id)
            return 1
        print(f"Deleted model {args.id}")
        return 0

    if args.action == "default":
        db.set_default_model(args.id)
        print(f"Model {args.id} is now the default")
        return 0

    if args.action == "test":
        model = dispatcher.resolve_model(args.id)
        ok = dispatcher.test_connection(model)
        print("OK" if ok else "FAILED")
        return 0 if ok else 1

    return 1


def cmd_key(args, db: ResearchDatabase, settings: Settings) -> int:
    service = PaperSearchService(db, settings)
    if args.action == "set":
        if not args.api_key:
            raise ValueError("key set needs an API key")
        service.save_api_key(args.api_key)
        print("API key saved")
    else:
        print("API key stored" if service.has_api_key() else "No API key stored")
    return 0


def cmd_search(args, db: ResearchDatabase, settings: Settings) -> int:
    service = PaperSearchService(db, settings)

    def show_progress(p):
        logger.debug("%s %d%%", p.status, p.percentage)

    result = service.process_query(args.query, on_progress=show_progress)
    for activity in result.activities:
        logger.info("[%s] %s", activity.type, activity.message)
    print(result.summary)
    for paper in result.papers:
        print(f"- {paper.name} ({paper.author}, {paper.year or 'n.d.'})")
    return 0 if result.success else 1


def cmd_upload(args, db: ResearchDatabase, settings: Settings) -> int:
    dispatcher = CompletionDispatcher(db, default_providers(settings.request_timeout))

    def show_progress(i, outcome):
        logger.info("%d/%d %s: %s", i, len(args.files), outcome.filename, outcome.status)

    result = upload_batch(
        db,
        dispatcher,
        args.files,
        batch_name=args.batch,
        batch_id=args.batch_id,
        max_files=settings.max_files,
        max_file_size=settings.max_file_size,
        on_progress=show_progress,
    )
    for outcome in result.outcomes:
        detail = f"pdf {outcome.pdf_id}" if outcome.status == "success" else outcome.error
        print(f"{outcome.filename}: {outcome.status} ({detail})")
    return 0 if not result.failed else 1


def cmd_chat(args, db: ResearchDatabase, settings: Settings) -> int:
    dispatcher = CompletionDispatcher(db, default_providers(settings.request_timeout))
    records = load_records(db, args.kind, args.id)
    logger.info("Chatting about %s", summarize_context(args.kind, records, str(args.id)))
    print(ask(dispatcher, args.question, records, model_id=args.model))
    return 0


def cmd_history(args, db: ResearchDatabase, settings: Settings) -> int:
    print("Searches:")
    for s in db.list_searches():
        print(f"  [{s['id']}] {s['query']} ({s['timestamp']})")
    print("Batches:")
    for b in db.list_batches():
        print(f"  [{b['id']}] {b['name']} — {b['pdf_count']} PDFs")
    print("PDFs:")
    for p in db.list_pdf_uploads():
        print(f"  [{p['id']}] {p['title'] or p['filename']}")
    return 0


def cmd_delete(args, db: ResearchDatabase, settings: Settings) -> int:
    {"search": db.delete_search, "pdf": db.delete_pdf, "batch": db.delete_batch}[args.kind](
        args.id
    )
    print(f"Deleted {args.kind} {args.id}")
    return 0


def cmd_export(args, db: ResearchDatabase, settings: Settings) -> int:
    exporter = export_search if args.kind == "search" else export_batch
    paths = exporter(db, args.id, args.out)
    print(json.dumps(paths, indent=2))
    return 0


COMMANDS = {
    "models": cmd_models,
    "key": cmd_key,
    "search": cmd_search,
    "upload": cmd_upload,
    "chat": cmd_chat,
    "history": cmd_history,
    "delete": cmd_delete,
    "export": cmd_export,
}


# ── CLI ──────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Research paper assistant")
    parser.add_argument("--config", default=None, help="Path to settings YAML file")
    parser.add_argument("--library", default=None, help="Override the library name")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    models = sub.add_parser("models", help="Manage AI model configurations")
    models.add_argument("action", choices=("list", "add", "update", "delete", "default", "test"))
    models.add_argument("--id", type=int, default=None)
    models.add_argument("--name")
    models.add_argument("--provider")
    models.add_argument("--api-key")
    models.add_argument("--base-url")
    models.add_argument("--model-name")

    key = sub.add_parser("key", help="Manage the Firecrawl API key")
    key.add_argument("action", choices=("set", "show"))
    key.add_argument("api_key", nargs="?")

    search = sub.add_parser("search", help="Search for papers on a topic")
    search.add_argument("query")

    upload = sub.add_parser("upload", help="Upload and analyze PDFs")
    upload.add_argument("files", nargs="+")
    group = upload.add_mutually_exclusive_group(required=True)
    group.add_argument("--batch", help="Name of a new batch")
    group.add_argument("--batch-id", type=int, help="Existing batch id")

    chat = sub.add_parser("chat", help="Ask a question about stored papers")
    chat.add_argument("kind", choices=("search", "pdf", "batch"))
    chat.add_argument("id", type=int)
    chat.add_argument("question")
    chat.add_argument("--model", type=int, default=None)

    sub.add_parser("history", help="List searches, batches and PDFs")

    delete = sub.add_parser("delete", help="Delete a search, PDF or batch")
    delete.add_argument("kind", choices=("search", "pdf", "batch"))
    delete.add_argument("id", type=int)

    export = sub.add_parser("export", help="Export a search or batch to Excel/CSV")
    export.add_argument("kind", choices=("search", "batch"))
    export.add_argument("id", type=int)
    export.add_argument("--out", default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    settings = load_settings(args.config)
    if args.library:
        settings = settings.model_copy(update={"library": args.library})

    db = ResearchDatabase(settings.library, data_root=settings.data_root)
    try:
        return COMMANDS[args.command](args, db, settings)
    except (ScholarError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
