"""Data models for the segmenter."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class Segment:
    """A bounded span of the input text.

    ``start``/``end`` are character offsets into the original text. They are
    exact for every strategy except ``sliding``, where they are rebuilt from
    single-space word joins and are only approximate.
    """

    text: str
    start: int
    end: int
    index: int
    word_count: int
    speaker: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["wordCount"] = data.pop("word_count")
        if self.speaker is None:
            data.pop("speaker")
        return data
