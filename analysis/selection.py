# cam_explainer/analysis/selection.py

import numbers
from typing import Optional

import numpy as np

from utils.exceptions import InvalidArgument


def select_class(scores, override: Optional[int] = None) -> int:
    """
    Index of the class to explain: the top-scoring one (first on ties) unless
    an explicit override is given.
    """
    scores = np.asarray(scores).reshape(-1)
    if scores.size == 0:
        raise InvalidArgument("Score vector is empty")
    if override is None:
        return int(np.argmax(scores))
    if isinstance(override, bool) or not isinstance(override, numbers.Integral):
        raise InvalidArgument(f"Class override must be an integer, got {override!r}")
    if not 0 <= override < scores.size:
        raise InvalidArgument(f"Class override {override} out of range [0, {scores.size})")
    return int(override)
