"""
Utility routines for the sparselearn package: exceptions, input
validation, random sampling and the thread-pool helpers used for
data-parallel map/reduce over records.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence

import joblib
import numpy as np
import toolz as tz
from sklearn.utils import check_random_state
from sklearn.utils.multiclass import check_classification_targets
from sklearn.utils.validation import column_or_1d

from sparselearn.records import Dataframe


__all__ = [
    "ContractViolation",
    "UnsupportedOptionError",
    "check_dataframe",
    "check_labels",
    "map_chunks",
    "parallel_apply",
    "sharded_sum",
    "weighted_sampling",
]


class ContractViolation(Exception):
    """
    Exception raised when an object is used in a state that breaks its
    contract, e.g. removing a record from an empty cluster.
    """

    def __init__(self, message):
        self.message = message
        Exception.__init__(self)

    def __str__(self):
        return repr(self.message)


class UnsupportedOptionError(ValueError):
    """Exception raised for an unknown distance, linkage, initialization or
    assignment option."""

    def __init__(self, kind, value, supported=()):
        self.kind = kind
        self.value = value
        self.supported = tuple(supported)
        if self.supported:
            message = f"unsupported {kind} {value!r}; expected one of {self.supported}"
        else:
            message = f"unsupported {kind} {value!r}"
        ValueError.__init__(self, message)


def check_option(kind, value, supported):
    """Normalize a string option to lower case and check it is supported."""
    normalized = value.lower() if isinstance(value, str) else value
    if normalized not in supported:
        raise UnsupportedOptionError(kind, value, supported)
    return normalized


def check_dataframe(X, y=None, *, x_types=None, require_labels=False) -> Dataframe:
    """
    Convert the input to a Dataframe and check it is not empty.

    Parameters
    ----------
    X : Dataframe, sequence of mappings, or 2d array

    y : array-like of shape (n_samples,), optional
        Labels. Ignored if X is already a Dataframe.

    require_labels : bool
        Whether every record must carry a label.
    """
    frame = Dataframe.from_xy(X, y, x_types=x_types)
    if len(frame) == 0:
        raise ValueError("Found an empty dataset; at least one record is required.")
    if require_labels and any(record.y is None for record in frame):
        raise ValueError("every training record needs a label")
    return frame


def check_labels(frame: Dataframe, *, sort=True) -> list:
    """
    Return the distinct classes of the labels in `frame`.

    Raises ValueError for regression-like targets or for fewer than two
    classes.
    """
    labels = [record.y for record in frame]
    check_classification_targets(column_or_1d(np.asarray(labels)))
    classes = list(dict.fromkeys(labels))
    if sort:
        classes = sorted(classes)
    if len(classes) < 2:
        raise ValueError(
            f"Classifiers need samples of at least 2 classes in the data, but the data "
            f"contains only one class: {classes[0]!r}"
        )
    return classes


def _n_chunks(n_jobs, n_items):
    return max(1, min(joblib.effective_n_jobs(n_jobs), n_items))


def map_chunks(func: Callable, items: Sequence, n_jobs=None) -> list:
    """
    Split `items` into contiguous chunks, one per worker thread, and apply
    `func` to each chunk. Returns the list of results in chunk order.

    With n_jobs=None or 1 the whole sequence is processed as one chunk in
    the calling thread.
    """
    items = list(items)
    n_chunks = _n_chunks(n_jobs, len(items))
    if n_chunks == 1:
        return [func(items)]
    size = math.ceil(len(items) / n_chunks)
    chunks = list(tz.partition_all(size, items))
    return joblib.Parallel(n_jobs=n_chunks, backend="threading")(
        joblib.delayed(func)(chunk) for chunk in chunks
    )


def parallel_apply(func: Callable, items: Sequence, n_jobs=None) -> list:
    """Apply `func` to every item, in parallel chunks, keeping item order."""
    results = map_chunks(lambda chunk: [func(item) for item in chunk], items, n_jobs)
    return list(tz.concat(results))


def sharded_sum(func: Callable, items: Sequence, n_jobs=None) -> dict:
    """
    Sharded accumulation: `func(chunk)` returns a partial {key: value} dict
    computed from its chunk only, and the partial dicts are summed key-wise
    in the calling thread.
    """
    partials = map_chunks(func, items, n_jobs)
    return tz.merge_with(sum, *partials)


def weighted_sampling(probabilities: Mapping, random_state=None):
    """
    Draw one key of `probabilities` with probability proportional to its
    value. Falls back to a uniform draw when every weight is zero.
    """
    random_state = check_random_state(random_state)
    keys = list(probabilities)
    if not keys:
        raise ContractViolation("cannot sample from an empty distribution")
    weights = np.asarray([probabilities[key] for key in keys], dtype=float)
    weights = np.where(np.isfinite(weights) & (weights > 0), weights, 0.0)
    total = weights.sum()
    if total <= 0:
        return keys[random_state.randint(len(keys))]
    return keys[random_state.choice(len(keys), p=weights / total)]
