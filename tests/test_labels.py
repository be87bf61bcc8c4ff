from __future__ import annotations

from pathlib import Path

import pytest

from nf_detect.errors import ErrorCode, ResourceMissing
from nf_detect.labels import load_labels, parse_labels


def test_trailing_whitespace_and_blank_lines_are_trimmed(tmp_path: Path) -> None:
    p = tmp_path / "labels.txt"
    p.write_text("NF \r\nnonNF\r\nother\n\n\n", encoding="utf-8")
    assert load_labels(p) == ("NF", "nonNF", "other")


def test_duplicates_and_interior_blank_lines_keep_positions() -> None:
    assert parse_labels("a\n\na\n") == ("a", "", "a")


def test_missing_file_raises_resource_missing(tmp_path: Path) -> None:
    with pytest.raises(ResourceMissing) as ei:
        load_labels(tmp_path / "nope.txt")
    assert ei.value.code is ErrorCode.resource_missing


def test_empty_file_raises_resource_missing(tmp_path: Path) -> None:
    p = tmp_path / "labels.txt"
    p.write_text("\n  \n", encoding="utf-8")
    with pytest.raises(ResourceMissing):
        load_labels(p)
