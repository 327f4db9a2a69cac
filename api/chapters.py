"""
Chapter marker parsing.

Chapters arrive in one of two shapes:
1. A structured list of {"time": ..., "label": ...} objects
2. Free text, one marker per line, e.g. "0:30 Intro" or "1:02:15 Outro"

Entries that don't fit are dropped without raising.
"""

import re
from dataclasses import dataclass
from typing import Any, List, Optional

MAX_CHAPTER_LABEL_LENGTH = 255
MAX_CHAPTERS = 200

# H:MM, HH:MM or HH:MM:SS
_TIME = r"\d{1,2}:\d{2}(?::\d{2})?"
_CHAPTER_TIME_PATTERN = re.compile(_TIME)
# A time followed by whitespace and a label
_CHAPTER_LINE_PATTERN = re.compile(rf"({_TIME})\s+(.+)")


@dataclass
class ChapterMarker:
    time: str
    label: str

    def to_dict(self) -> dict:
        return {"time": self.time, "label": self.label}


def _clean_label(label: str) -> str:
    label = label.strip()
    if len(label) > MAX_CHAPTER_LABEL_LENGTH:
        label = label[: MAX_CHAPTER_LABEL_LENGTH - 3] + "..."
    return label


def parse_chapter_text(text: str) -> List[ChapterMarker]:
    """Parse newline-separated "time label" lines, skipping lines that don't match."""
    chapters = []
    for line in text.splitlines():
        match = _CHAPTER_LINE_PATTERN.search(line)
        if not match:
            continue
        label = _clean_label(match.group(2))
        if label:
            chapters.append(ChapterMarker(time=match.group(1), label=label))
    return chapters[:MAX_CHAPTERS]


def parse_chapter_list(items: List[Any]) -> List[ChapterMarker]:
    """Keep list entries that are mappings with a well-formed time and a string label."""
    chapters = []
    for item in items:
        if not isinstance(item, dict):
            continue
        time_label = item.get("time")
        label = item.get("label")
        if not isinstance(time_label, str) or not isinstance(label, str):
            continue
        time_label = time_label.strip()
        if _CHAPTER_TIME_PATTERN.fullmatch(time_label):
            chapters.append(ChapterMarker(time=time_label, label=_clean_label(label)))
    return chapters[:MAX_CHAPTERS]


def parse_chapters(value: Any) -> Optional[List[ChapterMarker]]:
    """
    Parse chapters from either accepted shape.

    Returns None when value is neither a list nor a string, so callers can
    tell "not provided" apart from "provided but empty".
    """
    if isinstance(value, list):
        return parse_chapter_list(value)
    if isinstance(value, str):
        return parse_chapter_text(value)
    return None
