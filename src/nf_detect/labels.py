from __future__ import annotations

from pathlib import Path

from .errors import ResourceMissing
from .inference.types import LabelSet


def parse_labels(text: str) -> LabelSet:
    # Interior blank lines are kept so indices stay aligned with logits
    body = text.strip()
    if not body:
        return ()
    return tuple(line.rstrip() for line in body.split("\n"))


def load_labels(path: Path) -> LabelSet:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ResourceMissing(f"label file unreadable: {path.as_posix()}") from exc
    labels = parse_labels(text)
    if not labels:
        raise ResourceMissing(f"label file is empty: {path.as_posix()}")
    return labels
