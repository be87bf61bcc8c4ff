from __future__ import annotations

import pytest

from nf_detect.advisory import Band, Category, advise, band_for, category_for


def test_other_ignores_confidence() -> None:
    low = advise("other", 0.01)
    high = advise("other", 0.99)
    assert low.text == high.text
    assert low.category is Category.other and low.band is None


@pytest.mark.parametrize(
    ("p", "band"),
    [
        (0.85, Band.strong),
        (0.849999, Band.moderate),
        (0.60, Band.moderate),
        (0.599999, Band.weak),
        (1.0, Band.strong),
        (0.0, Band.weak),
    ],
)
def test_band_boundaries(p: float, band: Band) -> None:
    assert band_for(p) is band
    assert advise("nf", p).band is band


def test_labels_are_matched_case_insensitively() -> None:
    assert category_for("NF") is Category.nf
    assert category_for(" Other ") is Category.other
    assert category_for("nonNF") is Category.non_nf
    assert category_for("anything") is Category.non_nf
    assert advise("NF", 0.9).text == advise("nf", 0.9).text


def test_every_category_band_pair_has_distinct_wording() -> None:
    texts = {advise(label, p).text for label in ("nf", "nonNF") for p in (0.95, 0.7, 0.3)}
    assert len(texts) == 6
    assert advise("other", 0.5).text not in texts


def test_text_has_interpretation_and_recommendation_list() -> None:
    adv = advise("nf", 0.7)
    lines = adv.text.split("\n")
    assert lines[0] == adv.interpretation
    assert lines[1] == "Recommendations:"
    assert len(lines) == 2 + len(adv.recommendations)
    assert all(line.startswith("• ") for line in lines[2:])
    assert "moderate" in adv.interpretation.lower()


def test_nf_and_non_nf_wording_differs_by_orientation() -> None:
    assert "Neurofibroma" in advise("NF", 0.9).interpretation
    assert "benign" in advise("nonNF", 0.9).interpretation
