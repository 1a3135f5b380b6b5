"""
Command line driver for the invoice memory engine.

Usage:
    invoice-memory process invoices.json --index 1
    invoice-memory process invoices.json --approve taxAmount --reject lineItem:2:sku
    invoice-memory inspect 6c1f0d9e-...
    invoice-memory search "Parts AG" --limit 20
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from invoice_memory import __version__
from invoice_memory.config import configure_logging, get_logger, get_settings
from invoice_memory.config.settings import StoreBackend
from invoice_memory.engine import MemoryEngine, ReviewSession
from invoice_memory.models import (
    HumanFeedback,
    NormalizedInvoice,
    UnparseableMemory,
    parse_learned_content,
)
from invoice_memory.storage import MemoryStore, MemoryStoreError, create_memory_store


logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _build_store(args: argparse.Namespace) -> MemoryStore:
    """Create the memory store from settings plus command line overrides."""
    updates: dict[str, Any] = {}
    if args.backend:
        updates["backend"] = StoreBackend(args.backend)
    if args.data_dir:
        updates["data_dir"] = Path(args.data_dir)

    settings = get_settings().memory_store
    if updates:
        settings = settings.model_copy(update=updates)
    return create_memory_store(settings)


def _load_invoice(path: Path, index: int) -> NormalizedInvoice:
    """
    Load one extracted invoice record from a JSON file.

    The file holds either a single record or a list of records.

    Raises:
        ValueError: If the file is unreadable or the record is invalid.
    """
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot read invoice file {path}: {e}") from e

    if isinstance(data, list):
        if not -len(data) <= index < len(data):
            raise ValueError(f"Invoice index {index} out of range (file has {len(data)} records)")
        data = data[index]

    if not isinstance(data, dict):
        raise ValueError("Invoice record must be a JSON object")

    return NormalizedInvoice.from_extracted_record(data)


def cmd_process(args: argparse.Namespace) -> int:
    """Process one invoice and print the output contract."""
    try:
        invoice = _load_invoice(Path(args.invoice_json), args.index)
        raw_text = Path(args.raw_text).read_text(encoding="utf-8") if args.raw_text else None
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    feedback = None
    if args.approve or args.reject:
        feedback = HumanFeedback(
            approved_fields=list(args.approve or []),
            rejected_fields=list(args.reject or []),
        )

    session = ReviewSession() if args.first_encounter_review else None

    engine = MemoryEngine(_build_store(args))
    output = engine.process(invoice, raw_text, human_feedback=feedback, session=session)
    _print_json(output.to_dict())
    return EXIT_OK


def cmd_inspect(args: argparse.Namespace) -> int:
    """Print a stored memory and its parsed content."""
    store = _build_store(args)
    memory = store.get_by_id(args.memory_id)
    if memory is None:
        print(f"Memory not found: {args.memory_id}", file=sys.stderr)
        return EXIT_FAILURE

    parsed = parse_learned_content(memory)
    if isinstance(parsed, UnparseableMemory):
        parsed_payload: dict[str, Any] = {"unparseable": True, "reason": parsed.reason}
    else:
        parsed_payload = parsed.model_dump(mode="json", by_alias=True, exclude_none=True)

    _print_json({"memory": memory.to_dict(), "parsed": parsed_payload})
    return EXIT_OK


def cmd_search(args: argparse.Namespace) -> int:
    """Print memories whose content contains the query."""
    store = _build_store(args)
    limit = args.limit or get_settings().memory_store.search_limit_default
    memories = store.search_by_text(args.query, limit)
    _print_json([m.to_dict() for m in memories])
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="invoice-memory",
        description="Invoice Memory Engine - learn from human invoice corrections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  invoice-memory process invoices.json --index 0
  invoice-memory process invoices.json --approve taxAmount
  invoice-memory search "Supplier GmbH"
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--backend",
        choices=[b.value for b in StoreBackend],
        help="Memory store backend (overrides MEMORY_STORE_BACKEND)",
    )
    parser.add_argument(
        "--data-dir",
        help="Directory for file-based stores (overrides MEMORY_STORE_DATA_DIR)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Process an extracted invoice")
    process.add_argument("invoice_json", help="JSON file with one record or a list of records")
    process.add_argument("--index", type=int, default=0, help="Record index when the file holds a list")
    process.add_argument("--raw-text", help="File with the invoice OCR text (overrides rawText)")
    process.add_argument("--approve", nargs="+", metavar="FIELD", help="Correction keys to approve")
    process.add_argument("--reject", nargs="+", metavar="FIELD", help="Correction keys to reject")
    process.add_argument(
        "--first-encounter-review",
        action="store_true",
        help="Force review the first time a vendor/pattern pair is seen",
    )
    process.set_defaults(handler=cmd_process)

    inspect = subparsers.add_parser("inspect", help="Show a stored memory")
    inspect.add_argument("memory_id", help="Memory id")
    inspect.set_defaults(handler=cmd_inspect)

    search = subparsers.add_parser("search", help="Search memories by text")
    search.add_argument("query", help="Substring to search for")
    search.add_argument("--limit", type=int, help="Maximum number of results")
    search.set_defaults(handler=cmd_search)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(stream=sys.stderr)

    try:
        return args.handler(args)
    except MemoryStoreError as e:
        logger.error("memory_store_failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
