"""Command line entry point for ingesting, querying and managing documents."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Sequence
from uuid import uuid4

import httpx

from docqa.api.app import AppDependencies, build_dependencies, process_document
from docqa.config import Settings, get_settings
from docqa.embeddings import build_index_schema, build_search_index
from docqa.errors import DocQAError
from docqa.metrics.observability import configure_logging
from docqa.services.citations import format_citations_for_display

DEFAULT_API_URL = os.getenv("DOCQA_API_URL", "http://localhost:8000")


def ingest_file(deps: AppDependencies, settings: Settings, path: Path) -> dict:
    if path.suffix.lower() not in settings.allowed_extensions:
        raise DocQAError(f"Unsupported file type: {path.suffix or 'unknown'}")
    document_id = str(uuid4())
    blob_path = f"{document_id}/{path.name}"
    deps.blobs.upload(blob_path, path.read_bytes(), overwrite=True)
    deps.statuses.create(document_id, path.name, blob_path)
    result = asyncio.run(process_document(deps, document_id))
    record = deps.statuses.get(document_id)
    report = {
        "document_id": document_id,
        "file_name": path.name,
        "status": record.status.value if record else None,
        "page_count": result.page_count if result else None,
        "chunk_count": result.chunk_count if result else None,
    }
    if record is not None and record.error_message:
        report["error_step"] = record.error_step
        report["error_message"] = record.error_message
    return report


def check_health(base_url: str = DEFAULT_API_URL, *, client: httpx.Client | None = None) -> list[str]:
    """Call /healthz then /healthz/ready on a running API; one report line per endpoint."""

    http = client or httpx.Client(base_url=base_url, timeout=5.0)
    lines: list[str] = []
    try:
        for path in ("/healthz", "/healthz/ready"):
            response = http.get(path)
            response.raise_for_status()
            lines.append(f"{path}: {response.text}")
    finally:
        if client is None:
            http.close()
    return lines


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="docqa", description="Grounded question answering over PDF documents.")
    commands = parser.add_subparsers(dest="command", required=True)

    ingest = commands.add_parser("ingest", help="Upload and process a PDF document")
    ingest.add_argument("path", type=Path, help="Path to the PDF file")

    ask = commands.add_parser("ask", help="Ask a question against indexed documents")
    ask.add_argument("question", type=str)
    ask.add_argument(
        "--document-id",
        dest="document_ids",
        action="append",
        default=[],
        help="Restrict the search to this document; repeat for several",
    )
    ask.add_argument("--max-chunks", type=int, default=None, help="Number of chunks used to build the answer")

    delete = commands.add_parser("delete", help="Delete a document from every store")
    delete.add_argument("document_id", type=str)

    commands.add_parser("list", help="List uploaded documents, newest first")
    commands.add_parser("recreate-index", help="Drop and recreate the search index")
    commands.add_parser("schema", help="Print the search index schema")

    health = commands.add_parser("health", help="Check liveness and readiness of a running API")
    health.add_argument("--url", default=DEFAULT_API_URL, help="Base URL of the API")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging()
    settings = get_settings()

    if args.command == "health":
        try:
            lines = check_health(args.url)
        except httpx.HTTPError as exc:
            print(f"Health check failed: {exc}", file=sys.stderr)
            return 1
        print("\n".join(lines))
        return 0
    if args.command == "schema":
        print(build_index_schema(settings).describe())
        return 0
    if args.command == "recreate-index":
        build_search_index(settings).recreate()
        print(f"Index '{settings.index_name}' recreated.")
        return 0

    deps = build_dependencies(settings)
    try:
        if args.command == "ingest":
            report = ingest_file(deps, settings, args.path)
            print(json.dumps(report, indent=2))
            return 0 if report["status"] == "completed" else 1
        if args.command == "ask":
            answer = asyncio.run(deps.query_service.ask(args.question, args.document_ids, max_chunks=args.max_chunks))
            print(answer.text)
            print()
            print(f"Confidence: {answer.confidence_score:.2f}  Found in documents: {answer.found_in_documents}")
            print()
            print(format_citations_for_display(answer.citations))
            return 0
        if args.command == "delete":
            result = asyncio.run(deps.deletion_service.delete_document(args.document_id))
            print(result.message)
            for error in result.errors:
                print(f"  {error}", file=sys.stderr)
            return 0 if result.overall_success else 1
        if args.command == "list":
            for record in deps.statuses.list():
                print(f"{record.document_id}  {record.status.value:<10}  {record.file_name}")
            return 0
    except DocQAError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    return 1


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
