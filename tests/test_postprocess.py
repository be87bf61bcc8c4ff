from __future__ import annotations

import io
import logging
import math

import pytest
import torch
from _fakes import LABELS

from nf_detect.errors import ErrorCode, InferenceError
from nf_detect.logging import _JsonFormatter, get_logger
from nf_detect.postprocess import argmax, classify, coerce_logits, softmax


def test_softmax_sums_to_one_and_survives_large_logits() -> None:
    probs = softmax([1000.0, 999.0, -1000.0])
    assert abs(sum(probs) - 1.0) < 1e-12
    assert all(math.isfinite(p) for p in probs)
    assert probs[0] > probs[1] > probs[2]


def test_classify_is_shift_invariant() -> None:
    assert classify([1.0, 2.0, 3.0], LABELS) == classify([101.0, 102.0, 103.0], LABELS)


def test_ties_resolve_to_lowest_index() -> None:
    p = classify([0.0, 0.0, 0.0], ("a", "a", "a"))
    assert p.index == 0
    assert p.label == "a"
    for q in p.probs:
        assert abs(q - 1.0 / 3.0) < 1e-12
    assert argmax([0.2, 0.5, 0.5]) == 1


def test_end_to_end_scores() -> None:
    p = classify([2.0, 0.5, 0.1], LABELS)
    total = math.exp(2.0) + math.exp(0.5) + math.exp(0.1)
    assert p.label == "NF"
    assert p.index == 0
    assert abs(p.confidence - math.exp(2.0) / total) < 1e-12
    assert 0.60 <= p.confidence < 0.85


def test_extra_logits_are_truncated_with_warning() -> None:
    buf = io.StringIO()
    h = logging.StreamHandler(buf)
    h.setFormatter(_JsonFormatter())
    logger = get_logger()
    logger.addHandler(h)
    try:
        p = classify([0.0, 1.0, 0.0, 50.0, 60.0], LABELS)
    finally:
        logger.removeHandler(h)
    assert len(p.probs) == 3
    assert p.label == "nonNF"
    assert "logit_label_mismatch" in buf.getvalue()


def test_too_few_logits_raise() -> None:
    with pytest.raises(InferenceError) as ei:
        classify([1.0, 2.0], LABELS)
    assert ei.value.code is ErrorCode.inference_failed


def test_empty_labels_and_non_finite_scores_raise() -> None:
    with pytest.raises(InferenceError):
        classify([1.0], ())
    with pytest.raises(InferenceError):
        classify([float("nan"), 0.0, 0.0], LABELS)


def test_coerce_logits_accepts_known_shapes() -> None:
    assert coerce_logits(torch.tensor([[1.0, 2.0, 3.0]])) == [1.0, 2.0, 3.0]
    assert coerce_logits((torch.tensor([0.5, -0.5]),)) == [0.5, -0.5]
    assert coerce_logits([1, 2.5]) == [1.0, 2.5]
    assert coerce_logits(torch.tensor([[1, 2]], dtype=torch.int64)) == [1.0, 2.0]


@pytest.mark.parametrize(
    "bad",
    [
        {"logits": [1.0]},
        "1,2,3",
        [True, False],
        [[1.0, 2.0]],
        None,
        torch.tensor([True, False]),
    ],
)
def test_coerce_logits_rejects_unknown_shapes(bad: object) -> None:
    with pytest.raises(InferenceError):
        coerce_logits(bad)
