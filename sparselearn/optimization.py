"""
Iterative optimization routines shared by the classifiers.

Two drivers live here:

- Improved Iterative Scaling (IIS) for maximum entropy models, which
  adjusts one lambda per (feature, class) pair until the model feature
  expectations match the observed ones;

- batch gradient descent with the "bold driver" learning-rate heuristic,
  used by the softmax and ordinal regression models.

Both run for a fixed number of iterations. Per-iteration scratch tables
are temporary maps of the model's ParameterStore, so they never outlive
the iteration that created them.
"""

import math
from contextlib import ExitStack

from sparselearn.maths import normalize_exp
from sparselearn.records import AssociativeArray, to_double
from sparselearn.utils import ContractViolation, sharded_sum


__all__ = [
    "BoldDriver",
    "active_features",
    "bold_driver_descent",
    "class_scores",
    "iis_update",
    "improved_iterative_scaling",
    "max_active_features",
    "model_expectations",
    "observed_expectations",
    "smooth_infinite_weights",
]


TOLERANCE = 1e-8


def active_features(x):
    """The features of `x` with a value greater than zero."""
    active = []
    for feature, value in x.items():
        value = to_double(value)
        if value is not None and value > 0.0:
            active.append(feature)
    return active


def max_active_features(frame):
    """
    Cmax: the largest number of active features in any one record.

    This is the maximum over the training data, not the size of the
    feature space.
    """
    cmax = max((len(active_features(record.x)) for record in frame), default=0)
    if cmax == 0:
        raise ContractViolation("no record has an active feature, so Cmax is zero")
    return cmax


def class_scores(features, classes, lambdas):
    """Sum of the lambdas of the given active features, for each class."""
    scores = AssociativeArray()
    for c in classes:
        score = 0.0
        for feature in features:
            score += lambdas.get((feature, c), 0.0)
        scores[c] = score
    return scores


def observed_expectations(frame, classes, features, n_jobs=None):
    """
    E_observed[(feature, class)]: the fraction of records that have the
    class and the feature active. Every pair starts at zero.
    """
    n = len(frame)

    def partial(records):
        counts = {}
        for record in records:
            for feature in active_features(record.x):
                key = (feature, record.y)
                counts[key] = counts.get(key, 0.0) + 1.0 / n
        return counts

    observed = {(feature, c): 0.0 for feature in features for c in classes}
    for key, value in sharded_sum(partial, frame.records(), n_jobs).items():
        observed[key] = observed.get(key, 0.0) + value
    return observed


def model_expectations(frame, classes, lambdas, n_jobs=None):
    """
    E_model[(feature, class)]: the model probability of each class,
    averaged over the records in which the feature is active.
    """
    n = len(frame)

    def partial(records):
        expected = {}
        for record in records:
            features = active_features(record.x)
            probabilities = normalize_exp(class_scores(features, classes, lambdas))
            for c, p in probabilities.items():
                for feature in features:
                    key = (feature, c)
                    expected[key] = expected.get(key, 0.0) + p / n
        return expected

    return sharded_sum(partial, frame.records(), n_jobs)


def iis_update(lambdas, observed, expected, cmax, tolerance=TOLERANCE):
    """
    One IIS pass over every (feature, class) pair, in place.

    Returns True if any lambda was set to an infinite value.
    """
    infinite = False
    for key, observed_value in observed.items():
        model_value = expected.get(key, 0.0)
        if abs(observed_value - model_value) <= tolerance:
            continue
        if observed_value == 0.0:
            lambdas[key] = -math.inf
            infinite = True
        elif model_value == 0.0:
            lambdas[key] = math.inf
            infinite = True
        else:
            lambdas[key] = lambdas.get(key, 0.0) + math.log(observed_value / model_value) / cmax
    return infinite


def smooth_infinite_weights(weights):
    """
    Replace -inf by the smallest finite weight and +inf by the largest.
    If no weight is finite the infinite ones become 0.
    """
    finite = [w for w in weights.values() if math.isfinite(w)]
    lowest = min(finite, default=0.0)
    highest = max(finite, default=0.0)
    for key, w in weights.items():
        if w == -math.inf:
            weights[key] = lowest
        elif w == math.inf:
            weights[key] = highest
    return weights


def improved_iterative_scaling(
    frame,
    classes,
    lambdas,
    observed,
    cmax,
    store,
    *,
    max_iter=100,
    n_jobs=None,
    verbose=0,
    on_iteration=None,
):
    """
    Fit the lambdas in place with Improved Iterative Scaling.

    Parameters
    ----------
    frame : Dataframe
        Labeled training records.

    classes : list
        The class labels.

    lambdas : dict
        (feature, class) -> lambda. Modified in place.

    observed : dict
        Observed expectations from `observed_expectations`.

    cmax : int
        Result of `max_active_features`.

    store : ParameterStore
        Provides the per-iteration temporary map of model expectations.

    on_iteration : callable, optional
        Called as on_iteration(iteration) at the end of every iteration.
    """
    for iteration in range(max_iter):
        if verbose:
            print("Iteration #", iteration)

        with store.temporary_map("tmp_model_expectations", big=True, concurrent=True) as expected:
            expected.update(model_expectations(frame, classes, lambdas, n_jobs))
            infinite = iis_update(lambdas, observed, expected, cmax)
            if infinite:
                if verbose >= 2:
                    print("  smoothing infinite lambdas")
                smooth_infinite_weights(lambdas)

        if on_iteration is not None:
            on_iteration(iteration)
    return lambdas


class BoldDriver:
    """
    Learning-rate adaptation for batch gradient descent.

    After every iteration the loss of the candidate weights is compared to
    the best loss seen so far. If it is worse the learning rate is halved
    and the candidate rejected; otherwise the rate grows by 5%, the
    candidate is accepted and its loss becomes the best loss.
    """

    decrease = 0.5
    increase = 1.05

    def __init__(self, learning_rate):
        self.learning_rate = learning_rate
        self.best_loss = math.inf
        self.losses = []
        self.best_losses = []
        self.learning_rates = [learning_rate]

    def step(self, loss):
        """Record the loss of a candidate. Returns whether to accept it."""
        self.losses.append(loss)
        # NaN compares False, so a NaN loss is always rejected
        if loss <= self.best_loss:
            self.learning_rate *= self.increase
            self.best_loss = loss
            accepted = True
        else:
            self.learning_rate *= self.decrease
            accepted = False
        self.best_losses.append(self.best_loss)
        self.learning_rates.append(self.learning_rate)
        return accepted


def bold_driver_descent(
    parameters,
    gradient_step,
    loss,
    store,
    *,
    learning_rate,
    max_iter=100,
    verbose=0,
    on_iteration=None,
):
    """
    Batch gradient descent with bold-driver learning-rate adaptation.

    Parameters
    ----------
    parameters : dict of name -> dict
        The current weight maps. They are only replaced, all at once, when
        the bold driver accepts an iteration's candidates.

    gradient_step : callable
        gradient_step(candidates, learning_rate) updates the candidate maps
        (which start as copies of `parameters`) in place. It must read
        the current weights from `parameters`, never from the candidates.

    loss : callable
        loss(candidates) -> float, the loss of the candidate weights.

    store : ParameterStore
        Provides the temporary candidate maps.

    Returns
    -------
    The BoldDriver, holding the loss and learning-rate histories.
    """
    driver = BoldDriver(learning_rate)
    for iteration in range(max_iter):
        with ExitStack() as stack:
            candidates = {
                name: stack.enter_context(
                    store.temporary_map(f"tmp_new_{name}", big=True, concurrent=True, initial=values)
                )
                for name, values in parameters.items()
            }
            gradient_step(candidates, driver.learning_rate)
            candidate_loss = loss(candidates)
            accepted = driver.step(candidate_loss)
            if accepted:
                for name, values in parameters.items():
                    values.clear()
                    values.update(candidates[name])

        if verbose:
            print("Iteration #", iteration)
        if verbose >= 2:
            print(
                f"  loss = {candidate_loss:.6g}, best loss = {driver.best_loss:.6g}, "
                f"learning rate = {driver.learning_rate:.6g}"
                + ("" if accepted else " (rejected)")
            )
        if on_iteration is not None:
            on_iteration(iteration)
    return driver
