"""Command line entry point: ``rhetoric analyze|segment|exemplars``."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from rhetoric.analysis.analyzer import analyze
from rhetoric.config import configure_logging, settings
from rhetoric.context import AppContext
from rhetoric.errors import RhetoricError
from rhetoric.exemplars.models import ExemplarConfidence
from rhetoric.pipeline_config import SegmentationMethod, SegmenterConfig
from rhetoric.segmentation.segmenter import segment_text

METHODS = [m.value for m in SegmentationMethod]


def _read_input(source: str) -> tuple[str, str]:
    if source == "-":
        return sys.stdin.read(), "<stdin>"
    return Path(source).read_text(encoding="utf-8"), source


def _emit(payload: Any, output: str | None = None) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {output}", file=sys.stderr)
    else:
        print(text)


def _record(exemplar: Any) -> dict[str, Any]:
    record = exemplar.to_record()
    record.pop("embedding", None)
    return record


async def _cmd_analyze(args: argparse.Namespace, context: AppContext) -> int:
    text, input_file = _read_input(args.input)
    request: dict[str, Any] = {
        "text": text,
        "exemplarStorePath": args.store,
        "inputFile": input_file,
        "segmentationMethod": args.method,
        "confidenceThreshold": args.threshold,
        "topK": args.top_k,
        "minExemplarsPerType": args.min_exemplars,
        "includeAlternatives": not args.no_alternatives,
        "includeExemplarMatches": not args.no_matches,
    }
    if args.min_words is not None:
        request["minWords"] = args.min_words
    if args.max_words is not None:
        request["maxWords"] = args.max_words
    if args.overlap is not None:
        request["overlapWords"] = args.overlap

    response = await analyze(request, context)
    _emit(response.to_json_dict(), args.output)
    return 0 if response.success else 1


async def _cmd_segment(args: argparse.Namespace, context: AppContext) -> int:
    text, _ = _read_input(args.input)
    config = SegmenterConfig(
        method=SegmentationMethod(args.method),
        min_words=args.min_words,
        max_words=args.max_words,
        overlap_words=args.overlap,
    )
    _emit([s.to_dict() for s in segment_text(text, config)])
    return 0


async def _cmd_exemplars(args: argparse.Namespace, context: AppContext) -> int:
    store = await context.stores.open(args.store)

    if args.action == "add":
        exemplar = await store.add(
            {
                "text": args.text,
                "moveType": args.move_type,
                "moveCategory": args.category,
                "confidence": args.confidence,
                "notes": args.notes,
                "sourceFile": args.source_file,
                "speaker": args.speaker,
                "annotatedBy": args.annotated_by,
            }
        )
        _emit(_record(exemplar))
    elif args.action == "remove":
        if not await store.remove(args.id):
            print(f"Exemplar {args.id} not found in {args.store}", file=sys.stderr)
            return 1
        _emit({"removedId": args.id})
    elif args.action == "list":
        exemplars = await store.list_exemplars(args.move_type)
        _emit([_record(e) for e in exemplars])
    elif args.action == "stats":
        stats = await store.stats()
        _emit(stats.model_dump(by_alias=True))
    elif args.action == "search":
        matches = await store.search(
            args.text, top_k=args.top_k, threshold=args.threshold, move_type=args.move_type
        )
        _emit([{"similarity": round(m.similarity, 4), "exemplar": _record(m.exemplar)} for m in matches])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rhetoric", description="Exemplar-based rhetorical move classifier")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("analyze", help="Classify the rhetorical moves in a text")
    p.add_argument("input", help="Text file to analyze, or - for stdin")
    p.add_argument("--store", default=settings.exemplar_store_path)
    p.add_argument("--method", choices=METHODS, default=SegmentationMethod.SENTENCE.value)
    p.add_argument("--threshold", type=float, default=0.5)
    p.add_argument("--top-k", type=int, default=5)
    p.add_argument("--min-exemplars", type=int, default=3)
    p.add_argument("--min-words", type=int, default=None)
    p.add_argument("--max-words", type=int, default=None)
    p.add_argument("--overlap", type=int, default=None, help="Window overlap for --method sliding")
    p.add_argument("--no-alternatives", action="store_true")
    p.add_argument("--no-matches", action="store_true")
    p.add_argument("--output", default=None, help="Write the JSON result here instead of stdout")
    p.set_defaults(handler=_cmd_analyze)

    p = sub.add_parser("segment", help="Split a text into segments without classifying")
    p.add_argument("input", help="Text file to segment, or - for stdin")
    p.add_argument("--method", choices=METHODS, default=SegmentationMethod.SENTENCE.value)
    p.add_argument("--min-words", type=int, default=settings.segment_min_words)
    p.add_argument("--max-words", type=int, default=settings.segment_max_words)
    p.add_argument("--overlap", type=int, default=settings.segment_overlap_words)
    p.set_defaults(handler=_cmd_segment)

    p = sub.add_parser("exemplars", help="Manage an exemplar collection")
    p.add_argument("--store", default=settings.exemplar_store_path)
    actions = p.add_subparsers(dest="action", required=True)

    a = actions.add_parser("add")
    a.add_argument("text")
    a.add_argument("--move-type", required=True)
    a.add_argument("--category", required=True)
    a.add_argument("--confidence", choices=[c.value for c in ExemplarConfidence], default="high")
    a.add_argument("--notes", default=None)
    a.add_argument("--source-file", default=None)
    a.add_argument("--speaker", default=None)
    a.add_argument("--annotated-by", default=None)

    a = actions.add_parser("remove")
    a.add_argument("id")

    a = actions.add_parser("list")
    a.add_argument("--move-type", default=None)

    actions.add_parser("stats")

    a = actions.add_parser("search")
    a.add_argument("text")
    a.add_argument("--top-k", type=int, default=5)
    a.add_argument("--threshold", type=float, default=0.0)
    a.add_argument("--move-type", default=None)

    p.set_defaults(handler=_cmd_exemplars)
    return parser


def main(argv: list[str] | None = None, context: AppContext | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    context = context or AppContext()

    try:
        return asyncio.run(args.handler(args, context))
    except RhetoricError as exc:
        print(f"Error [{exc.code}]: {exc.message}", file=sys.stderr)
        if exc.details:
            print(json.dumps(exc.details, indent=2), file=sys.stderr)
        return 1
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
