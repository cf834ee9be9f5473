"""
Distance functions between sparse feature vectors.

Each function compares two mappings over the union of their keys (or over
the keys of a weight mapping, for the weighted variants):

- equal values (or a key missing from both) contribute 0;
- a key present on one side only contributes that value if it is numeric
  or boolean, and 1 otherwise;
- two different values contribute their numeric difference, or 1 if
  either is categorical.
"""

import math
import numbers

import numpy as np
import toolz as tz

from sparselearn.records import to_double
from sparselearn.utils import UnsupportedOptionError


__all__ = [
    "DISTANCES",
    "column_distances",
    "euclidean",
    "euclidean_weighted",
    "get_distance",
    "manhattan",
    "manhattan_weighted",
    "maximum",
]


def _is_numeric(value):
    return isinstance(value, (numbers.Number, np.bool_))


def _column_difference(v1, v2):
    if v1 is None and v2 is None:
        return 0.0
    if v1 is None or v2 is None:
        present = v2 if v1 is None else v1
        return abs(to_double(present)) if _is_numeric(present) else 1.0
    if _is_numeric(v1) and _is_numeric(v2):
        return to_double(v1) - to_double(v2)
    return 0.0 if v1 == v2 else 1.0


def column_distances(a, b, columns=None):
    """
    Per-column differences between `a` and `b`, as a dict.

    If `columns` is None the union of the keys of `a` and `b` is used.
    """
    if columns is None:
        columns = tz.unique(tz.concat([a.keys(), b.keys()]))
    return {column: _column_difference(a.get(column), b.get(column)) for column in columns}


def euclidean(a, b):
    return math.sqrt(sum(d * d for d in column_distances(a, b).values()))


def manhattan(a, b):
    return sum(abs(d) for d in column_distances(a, b).values())


def maximum(a, b):
    """The maximum (Chebyshev) distance."""
    return max((abs(d) for d in column_distances(a, b).values()), default=0.0)


@tz.curry
def euclidean_weighted(weights, a, b):
    differences = column_distances(a, b, weights.keys())
    return math.sqrt(sum(weights[c] * d * d for c, d in differences.items()))


@tz.curry
def manhattan_weighted(weights, a, b):
    differences = column_distances(a, b, weights.keys())
    return sum(weights[c] * abs(d) for c, d in differences.items())


DISTANCES = {
    "euclidean": euclidean,
    "manhattan": manhattan,
    "maximum": maximum,
}

_WEIGHTED_DISTANCES = {
    "euclidean": euclidean_weighted,
    "manhattan": manhattan_weighted,
}


def get_distance(name, weights=None):
    """
    Look up a distance function by name.

    With `weights` given, only the weighted variants ('euclidean' and
    'manhattan') are available, and the result is the weighted function
    bound to those weights.
    """
    key = name.lower() if isinstance(name, str) else name
    if weights is None:
        if key not in DISTANCES:
            raise UnsupportedOptionError("distance", name, DISTANCES)
        return DISTANCES[key]
    if key not in _WEIGHTED_DISTANCES:
        raise UnsupportedOptionError("weighted distance", name, _WEIGHTED_DISTANCES)
    return _WEIGHTED_DISTANCES[key](weights)
