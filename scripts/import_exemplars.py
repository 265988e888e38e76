"""Bulk-load labeled spans from a JSONL file into an exemplar collection."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rhetoric.config import configure_logging, settings
from rhetoric.context import AppContext
from rhetoric.errors import RhetoricError
from rhetoric.exemplars.models import ExemplarFields


def parse_exemplar_line(data: dict) -> dict:
    """Normalise one JSONL record into exemplar fields.

    Annotation exports vary -- accepted spellings:
    - 'text' or 'span' -- the labeled text
    - 'moveType' / 'move_type' / 'label' -- the move label
    - 'moveCategory' / 'move_category' / 'category' -- the category
    """
    return {
        "text": data.get("text", data.get("span", "")),
        "moveType": data.get("moveType", data.get("move_type", data.get("label", ""))),
        "moveCategory": data.get("moveCategory", data.get("move_category", data.get("category", ""))),
        "confidence": data.get("confidence", "high"),
        "notes": data.get("notes"),
        "sourceFile": data.get("sourceFile", data.get("source_file")),
        "sourceTitle": data.get("sourceTitle", data.get("source_title")),
        "speaker": data.get("speaker"),
        "contextBefore": data.get("contextBefore", data.get("context_before")),
        "contextAfter": data.get("contextAfter", data.get("context_after")),
        "annotatedBy": data.get("annotatedBy", data.get("annotated_by")),
    }


def read_exemplars(path: Path) -> tuple[list[ExemplarFields], int]:
    """Parse a JSONL file; returns (valid exemplar fields, number of bad lines)."""
    valid: list[ExemplarFields] = []
    errors = 0
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                valid.append(ExemplarFields.model_validate(parse_exemplar_line(json.loads(line))))
            except Exception as e:
                errors += 1
                print(f"  [{lineno}] SKIP -- {e}")
    return valid, errors


async def import_exemplars(jsonl_path: str, store_path: str, batch_size: int = 64) -> int:
    """Add every valid line of *jsonl_path* to the collection at *store_path*."""
    path = Path(jsonl_path)
    if not path.exists():
        print(f"Input file {jsonl_path} not found.")
        return 1

    exemplars, errors = read_exemplars(path)
    print(f"Importing {len(exemplars)} exemplars into {store_path}...")

    store = await AppContext().stores.open(store_path)
    added = 0
    for start in range(0, len(exemplars), batch_size):
        batch = exemplars[start : start + batch_size]
        try:
            added += len(await store.add_many(batch))
        except RhetoricError as e:
            errors += len(batch)
            print(f"  batch {start // batch_size + 1} ERROR: {e.message}")
            continue
        print(f"  [{start + len(batch)}/{len(exemplars)}] added")

    print(f"\nDone! Added {added} exemplars, {errors} errors.")
    return 0 if errors == 0 else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("jsonl")
    parser.add_argument("--store", default=settings.exemplar_store_path)
    parser.add_argument("--batch-size", type=int, default=64)
    args = parser.parse_args()
    configure_logging()
    sys.exit(asyncio.run(import_exemplars(args.jsonl, args.store, args.batch_size)))
