"""Canned interpretation and recommendation text for a prediction.

The wording is a fixed catalog keyed by ``(category, band)``. Only the label
category and the confidence band select an entry; nothing is computed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final

HIGH_THRESHOLD: Final[float] = 0.85
MID_THRESHOLD: Final[float] = 0.60


class Category(str, Enum):
    nf = "nf"
    non_nf = "non_nf"
    other = "other"


class Band(str, Enum):
    strong = "strong"
    moderate = "moderate"
    weak = "weak"


@dataclass(frozen=True)
class Advisory:
    category: Category
    band: Band | None
    interpretation: str
    recommendations: tuple[str, ...]

    @property
    def text(self) -> str:
        lines = [self.interpretation, "Recommendations:"]
        lines.extend(f"• {r}" for r in self.recommendations)
        return "\n".join(lines)


def category_for(label: str) -> Category:
    key = label.strip().lower()
    if key == "other":
        return Category.other
    if key == "nf":
        return Category.nf
    return Category.non_nf


def band_for(confidence: float) -> Band:
    if confidence >= HIGH_THRESHOLD:
        return Band.strong
    if confidence >= MID_THRESHOLD:
        return Band.moderate
    return Band.weak


_OTHER: Final[tuple[str, tuple[str, ...]]] = (
    "Predicted as “other” (not a skin/lesion photo).",
    (
        "Please upload a clear skin/lesion photo (centered, in focus, even lighting).",
        "Avoid documents, landscapes, objects, text, or screenshots.",
        "If you have clinical concerns, consider in-person evaluation.",
    ),
)

_CATALOG: Final[dict[tuple[Category, Band], tuple[str, tuple[str, ...]]]] = {
    (Category.nf, Band.strong): (
        "The model strongly suggests Neurofibroma (NF).",
        (
            "If new or changing, seek clinical evaluation; dermoscopy or pathology "
            "when appropriate.",
            "Capture multiple clear angles for follow-up.",
        ),
    ),
    (Category.nf, Band.moderate): (
        "Leaning NF with moderate confidence.",
        (
            "Monitor size/color/shape over 2-4 weeks.",
            "If pain, itching, bleeding, or rapid growth occurs, seek care promptly.",
        ),
    ),
    (Category.nf, Band.weak): (
        "Weak positive, insufficient evidence.",
        (
            "Re-take a well-lit, in-focus close-up and try again.",
            "Consider in-person evaluation if symptoms are concerning.",
        ),
    ),
    (Category.non_nf, Band.strong): (
        "Likely a non-NF benign lesion.",
        (
            "Observation is reasonable if asymptomatic; keep periodic photos.",
            "If rapid growth, asymmetry, irregular border, or color variegation appears, "
            "seek care.",
        ),
    ),
    (Category.non_nf, Band.moderate): (
        "Leaning non-NF with moderate confidence.",
        ("Continue observation; consider clinic visit if changes persist.",),
    ),
    (Category.non_nf, Band.weak): (
        "Model uncertainty is high.",
        ("Re-take a clearer photo and re-check; visit clinic if needed.",),
    ),
}


def advise(label: str, confidence: float) -> Advisory:
    category = category_for(label)
    if category is Category.other:
        interpretation, recs = _OTHER
        return Advisory(
            category=category, band=None, interpretation=interpretation, recommendations=recs
        )
    band = band_for(confidence)
    interpretation, recs = _CATALOG[(category, band)]
    return Advisory(
        category=category, band=band, interpretation=interpretation, recommendations=recs
    )
