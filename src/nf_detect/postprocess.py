from __future__ import annotations

import math
from collections.abc import Sequence

import torch

from .errors import InferenceError
from .inference.types import LabelSet, Logits, Prediction
from .logging import get_logger


def coerce_logits(output: object) -> Logits:
    """Flatten whatever the runtime returned into a list of class scores.

    Accepts a tensor of any shape, a one-element tuple/list wrapping a tensor,
    or a flat sequence of real numbers.
    """
    if isinstance(output, (tuple, list)) and len(output) == 1 and torch.is_tensor(output[0]):
        output = output[0]
    if torch.is_tensor(output):
        if not (output.is_floating_point() or output.dtype in (torch.int32, torch.int64)):
            raise InferenceError(f"unsupported output dtype: {output.dtype}")
        flat = output.detach().to(device="cpu", dtype=torch.float64).reshape(-1)
        return [float(v) for v in flat.tolist()]
    if isinstance(output, Sequence) and not isinstance(output, (str, bytes)):
        out: Logits = []
        for v in output:
            if isinstance(v, bool) or not isinstance(v, (int, float)):
                raise InferenceError("model output is not a flat numeric sequence")
            out.append(float(v))
        return out
    raise InferenceError(f"unrecognized model output type: {type(output).__name__}")


def softmax(logits: Sequence[float]) -> list[float]:
    if not logits:
        return []
    # Max subtraction keeps exp() in range; the result is unchanged
    m = max(logits)
    exps = [math.exp(v - m) for v in logits]
    total = sum(exps)
    return [e / total for e in exps]


def argmax(values: Sequence[float]) -> int:
    if not values:
        raise ValueError("argmax of empty sequence")
    best = 0
    v = values[0]
    for i in range(1, len(values)):
        # Strict comparison: the first of equal values wins
        if values[i] > v:
            v = values[i]
            best = i
    return best


def classify(logits: Sequence[float], labels: LabelSet) -> Prediction:
    n = len(labels)
    if n == 0:
        raise InferenceError("label set is empty")
    if len(logits) < n:
        raise InferenceError(f"model produced {len(logits)} scores for {n} labels")
    if len(logits) > n:
        get_logger().warning("logit_label_mismatch n_logits=%d n_labels=%d", len(logits), n)
    scores = list(logits[:n])
    if not all(math.isfinite(s) for s in scores):
        raise InferenceError("model produced non-finite scores")
    probs = softmax(scores)
    idx = argmax(probs)
    return Prediction(label=labels[idx], confidence=probs[idx], index=idx, probs=tuple(probs))
