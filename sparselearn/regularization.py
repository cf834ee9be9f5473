"""
L1, L2 and ElasticNet regularization for the gradient-descent learners.

The update functions take the weights of the previous iteration
(`weights`) and modify the candidate weights (`new_weights`) in place.
"""

import math


__all__ = [
    "elastic_net_penalty",
    "elastic_net_update",
    "l1_penalty",
    "l1_update",
    "l2_penalty",
    "l2_update",
    "penalty",
    "regularize",
]


def l1_update(l1, learning_rate, weights, new_weights):
    """Soft-threshold every candidate weight by learning_rate * l1."""
    if l1 <= 0:
        return
    threshold = learning_rate * l1
    for key, w in new_weights.items():
        shrunk = abs(w) - threshold
        new_weights[key] = math.copysign(shrunk, w) if shrunk > 0 else 0.0


def l1_penalty(l1, weights):
    if l1 <= 0:
        return 0.0
    return l1 * sum(abs(w) for w in weights.values())


def l2_update(l2, learning_rate, weights, new_weights):
    """Shrink the candidate weights by learning_rate * l2 * w_old."""
    if l2 <= 0:
        return
    for key, w in weights.items():
        new_weights[key] = new_weights[key] - learning_rate * l2 * w


def l2_penalty(l2, weights):
    if l2 <= 0:
        return 0.0
    return l2 * sum(w * w for w in weights.values()) / 2.0


def elastic_net_update(l1, l2, learning_rate, weights, new_weights):
    """
    Naive elastic net (Zou and Hastie, 2005): soft-threshold by l1/2, then
    shrink by 1/(1 + l2).
    """
    for key, w in new_weights.items():
        net_w = abs(w) - l1 / 2.0
        if net_w > 0:
            new_weights[key] = math.copysign(net_w / (1.0 + l2), w)
        else:
            new_weights[key] = 0.0


def elastic_net_penalty(l1, l2, weights):
    # The squared term is not halved, unlike l2_penalty.
    sum_abs = 0.0
    sum_squares = 0.0
    for w in weights.values():
        sum_abs += abs(w)
        sum_squares += w * w
    return l1 * sum_abs + l2 * sum_squares


def regularize(l1, l2, learning_rate, weights, new_weights):
    """Apply the rule selected by which of l1 and l2 are positive."""
    if l1 > 0 and l2 > 0:
        elastic_net_update(l1, l2, learning_rate, weights, new_weights)
    elif l1 > 0:
        l1_update(l1, learning_rate, weights, new_weights)
    elif l2 > 0:
        l2_update(l2, learning_rate, weights, new_weights)


def penalty(l1, l2, weights):
    if l1 > 0 and l2 > 0:
        return elastic_net_penalty(l1, l2, weights)
    elif l1 > 0:
        return l1_penalty(l1, weights)
    elif l2 > 0:
        return l2_penalty(l2, weights)
    return 0.0
