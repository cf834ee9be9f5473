"""
Scalar link functions and helpers that turn score vectors into
probabilities.
"""

import math

import numpy as np
from scipy.special import expit, logsumexp


__all__ = [
    "normalize",
    "normalize_exp",
    "select_max_key",
    "select_min_key",
    "sigmoid",
    "softplus",
]


def sigmoid(z):
    """
    The logistic function g(z) = 1 / (1 + exp(-z)), clamped to exactly 1.0
    for z > 30 and exactly 0.0 for z < -30.
    """
    if z > 30:
        return 1.0
    elif z < -30:
        return 0.0
    return float(expit(z))


def softplus(z):
    """h(z) = log(1 + exp(z)), returning z for z > 30 and 0.0 for z < -30."""
    if z > 30:
        return z
    elif z < -30:
        return 0.0
    return math.log1p(math.exp(z))


def normalize_exp(scores):
    """
    Convert a mapping of log scores into probabilities in place, using
    log-sum-exp so that large scores do not overflow.

    If no score is finite (e.g. all are -inf) the mapping becomes uniform.
    """
    if not scores:
        return scores
    keys = list(scores)
    log_scores = np.array([scores[key] for key in keys], dtype=float)
    log_z = logsumexp(log_scores)
    if np.isfinite(log_z):
        probabilities = np.exp(log_scores - log_z)
    else:
        probabilities = np.full(len(keys), 1.0 / len(keys))
    for key, p in zip(keys, probabilities):
        scores[key] = float(p)
    return scores


def normalize(values):
    """Divide every value of the mapping by the sum of the values, in place."""
    total = sum(values.values())
    if total != 0:
        for key in values:
            values[key] = values[key] / total
    return values


def select_max_key(values):
    return max(values, key=values.__getitem__)


def select_min_key(values):
    return min(values, key=values.__getitem__)
