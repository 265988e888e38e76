"""Tests for the JSONL exemplar import script."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import patch

from scripts.import_exemplars import import_exemplars, parse_exemplar_line, read_exemplars
from tests.fakes import make_context


def test_parse_accepts_alternate_keys() -> None:
    fields = parse_exemplar_line({"span": "Granted, fine.", "label": "concession", "category": "positioning"})
    assert fields["text"] == "Granted, fine."
    assert fields["moveType"] == "concession"
    assert fields["moveCategory"] == "positioning"
    assert fields["confidence"] == "high"


def test_read_skips_bad_lines(tmp_path: Path) -> None:
    path = tmp_path / "spans.jsonl"
    path.write_text(
        "\n".join(
            [
                json.dumps({"text": "Granted, fine.", "moveType": "concession", "moveCategory": "p"}),
                "{broken json",
                json.dumps({"text": "No label"}),
                "",
            ]
        ),
        encoding="utf-8",
    )
    valid, errors = read_exemplars(path)
    assert len(valid) == 1
    assert errors == 2


def test_import_into_store(tmp_path: Path) -> None:
    source = tmp_path / "spans.jsonl"
    source.write_text(
        "\n".join(
            json.dumps({"text": f"However, case {i} differs.", "move_type": "contrast", "move_category": "a"})
            for i in range(5)
        ),
        encoding="utf-8",
    )
    target = tmp_path / "store.json"

    with patch("scripts.import_exemplars.AppContext", make_context):
        code = asyncio.run(import_exemplars(str(source), str(target), batch_size=2))

    assert code == 0
    data = json.loads(target.read_text(encoding="utf-8"))
    assert data["exemplarCount"] == 5
    assert data["revision"] == 3


def test_missing_input(tmp_path: Path) -> None:
    assert asyncio.run(import_exemplars(str(tmp_path / "nope.jsonl"), str(tmp_path / "s.json"))) == 1
