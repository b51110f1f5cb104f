"""Operator CLI for the knowledge base.

Usage::

    python -m knowledge_base.cli.ingest file --path notes.pdf --title "Notes" --shared
    python -m knowledge_base.cli.ingest file --path faq.txt --tenant acme
    python -m knowledge_base.cli.ingest search "refund policy" --tenant acme
    python -m knowledge_base.cli.ingest list --tenant acme
    python -m knowledge_base.cli.ingest delete --source-id acme_1700000000000_ab12cd --tenant acme
    python -m knowledge_base.cli.ingest status doc_1700000000000_abc123def
    python -m knowledge_base.cli.ingest stats

Components are built from the same settings as the API server.  Without
``S3_BUCKET`` the object store is in-memory, so metadata does not survive
between invocations and ``list``/``delete``/``status`` see nothing.
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

from knowledge_base.config.settings import Settings
from knowledge_base.utils.errors import KnowledgeBaseError, PartialDeletionWarning


async def _build_service(app_settings: Settings):  # noqa: ANN202
    """Build the knowledge base facade and make sure the index is ready.

    Imports are deferred so ``--help`` does not load the provider SDKs.
    """
    from knowledge_base.main import build_components

    components = build_components(app_settings)
    await components["vector_index"].ensure_index()
    return components["knowledge_base"]


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_file(args: argparse.Namespace, service) -> int:  # noqa: ANN001
    """Ingest one local file."""
    path = Path(args.path)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    media_type = args.media_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    print(f"Ingesting {path.name} ({media_type})")
    print(f"  Scope: {'shared' if args.shared else f'tenant {args.tenant}'}")

    processing_id = await service.ingest(
        path.read_bytes(),
        media_type,
        path.name,
        title=args.title,
        tenant_id=args.tenant,
        is_shared=args.shared,
    )
    status = await service.get_status(processing_id)

    print(f"\n  Processing ID: {processing_id}")
    if status is None:
        print("  Status:        unknown")
        return 1
    print(f"  Status:        {status.state.value} ({status.progress}%)")
    print(f"  Source ID:     {status.source_id}")
    if status.error:
        print(f"  Error:         {status.error}")
        return 1
    return 0


async def _handle_search(args: argparse.Namespace, service) -> int:  # noqa: ANN001
    context = await service.search(args.query, tenant_id=args.tenant, top_k=args.top_k)
    if context.is_empty:
        print("No relevant passages found.")
        return 0

    for i, chunk in enumerate(context.chunks, start=1):
        preview = chunk.text[:200].replace("\n", " ")
        print(f"[{i}] {chunk.source}  score={chunk.score:.3f}")
        print(f"    {preview}")
    print(f"\nSources: {', '.join(context.sources)}")
    return 0


async def _handle_list(args: argparse.Namespace, service) -> int:  # noqa: ANN001
    documents = await service.list_documents(args.tenant)
    if not documents:
        print("No documents.")
        return 0

    print(f"{'SOURCE ID':<40} {'CHUNKS':>6}  {'UPLOADED':<20} TITLE")
    for doc in documents:
        uploaded = doc.upload_date.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{doc.source_id:<40} {doc.chunk_count:>6}  {uploaded:<20} {doc.title}")
    return 0


async def _handle_delete(args: argparse.Namespace, service) -> int:  # noqa: ANN001
    """Delete a document after confirmation."""
    if not args.yes:
        confirm = input(f"  Delete document {args.source_id}? [y/N] ").strip().lower()
        if confirm not in ("y", "yes"):
            print("  Aborted.")
            return 0

    try:
        report = await service.delete_document(args.source_id, args.tenant)
    except PartialDeletionWarning as exc:
        print(f"Warning: {exc.message}", file=sys.stderr)
        return 2

    print(f"Deleted {args.source_id}")
    print(f"  Ids swept:          {report.phase_one_ids}")
    print(f"  Found by probing:   {len(report.phase_two_ids)}")
    if not report.complete:
        print(f"  Not confirmed:      {len(report.remaining_ids)}")
        return 2
    return 0


async def _handle_status(args: argparse.Namespace, service) -> int:  # noqa: ANN001
    status = await service.get_status(args.processing_id)
    if status is None:
        print(f"Unknown processing id: {args.processing_id}")
        return 1

    print(f"  State:    {status.state.value}")
    print(f"  Progress: {status.progress}%")
    print(f"  Message:  {status.message}")
    if status.error:
        print(f"  Error:    {status.error}")
    return 0


async def _handle_stats(service) -> int:  # noqa: ANN001
    stats = await service.get_index_stats()

    print("Index Statistics")
    print("=" * 40)
    print(f"  Total vectors: {stats.total_vectors}")
    if stats.dimension:
        print(f"  Dimension:     {stats.dimension}")
    if stats.namespaces:
        print("\n  Vectors by namespace:")
        for namespace, count in sorted(stats.namespaces.items()):
            print(f"    {namespace:<30} {count}")
    return 0


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    service = await _build_service(app_settings)

    if args.command == "file":
        return await _handle_file(args, service)
    if args.command == "search":
        return await _handle_search(args, service)
    if args.command == "list":
        return await _handle_list(args, service)
    if args.command == "delete":
        return await _handle_delete(args, service)
    if args.command == "status":
        return await _handle_status(args, service)
    return await _handle_stats(service)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the knowledge base CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m knowledge_base.cli.ingest",
        description="Manage documents in the knowledge base.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Knowledge base commands")

    # -- file --
    file_parser = subparsers.add_parser("file", help="Ingest a PDF, text or DOCX file")
    file_parser.add_argument("--path", required=True, help="Path to the file")
    file_parser.add_argument("--title", help="Document title (default: file name)")
    file_parser.add_argument("--media-type", dest="media_type", help="Override the guessed MIME type")
    scope = file_parser.add_mutually_exclusive_group(required=True)
    scope.add_argument("--tenant", help="Owning tenant id")
    scope.add_argument("--shared", action="store_true", help="Make the document visible to all tenants")

    # -- search --
    search_parser = subparsers.add_parser("search", help="Search the knowledge base")
    search_parser.add_argument("query", help="Search text")
    search_parser.add_argument("--tenant", help="Also search this tenant's documents")
    search_parser.add_argument("--top-k", dest="top_k", type=int, default=5, help="Result count")

    # -- list --
    list_parser = subparsers.add_parser("list", help="List documents")
    list_parser.add_argument("--tenant", help="Tenant id (omit for shared documents)")

    # -- delete --
    delete_parser = subparsers.add_parser("delete", help="Delete a document")
    delete_parser.add_argument("--source-id", dest="source_id", required=True, help="Document id")
    delete_parser.add_argument("--tenant", help="Owning tenant id (omit for shared documents)")
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show ingestion status")
    status_parser.add_argument("processing_id", help="Processing id returned by 'file'")

    # -- stats --
    subparsers.add_parser("stats", help="Show vector index statistics")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point: parse arguments, load settings and dispatch."""
    parser = _build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    try:
        exit_code = asyncio.run(_run(args, app_settings))
    except KnowledgeBaseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
