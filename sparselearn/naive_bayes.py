"""
Naive Bayes classifiers for sparse count or indicator features, with
Laplace (add-one) smoothing.
"""

import math

from sparselearn.base import BaseSparseClassifier
from sparselearn.records import AssociativeArray, numeric_items
from sparselearn.utils import sharded_sum


__all__ = [
    "BernoulliNaiveBayes",
    "BinarizedNaiveBayes",
    "MultinomialNaiveBayes",
]


# Floor for 1 - p, which is 0 when a single feature column is always on
MIN_PROBABILITY = 1e-300


def _log_1_minus(p):
    return math.log(max(1.0 - p, MIN_PROBABILITY))


class _BaseNaiveBayes(BaseSparseClassifier):
    """
    Shared fitting code. Only positive feature values count as
    occurrences; with `_binarized` every occurrence counts as 1.
    """

    _binarized = False

    def __init__(self, *, n_jobs=None, verbose=0):
        self.n_jobs = n_jobs
        self.verbose = verbose

    def _count(self, frame, classes):
        """
        Returns (class_counts, feature_counts, total_occurrences) where
        feature_counts is keyed by (feature, class).
        """
        binarized = self._binarized

        def partial(records):
            counts = {}
            for record in records:
                c = record.y
                counts[("n", c)] = counts.get(("n", c), 0.0) + 1.0
                for feature, value in numeric_items(record.x):
                    if value <= 0.0:
                        continue
                    occurrences = 1.0 if binarized else value
                    key = ("f", (feature, c))
                    counts[key] = counts.get(key, 0.0) + occurrences
                    counts[("total", c)] = counts.get(("total", c), 0.0) + occurrences
            return counts

        counts = sharded_sum(partial, frame.records(), self.n_jobs)
        class_counts = {c: counts.get(("n", c), 0.0) for c in classes}
        total_occurrences = {c: counts.get(("total", c), 0.0) for c in classes}
        feature_counts = {
            (feature, c): counts.get(("f", (feature, c)), 0.0)
            for feature in frame.x_types
            for c in classes
        }
        return class_counts, feature_counts, total_occurrences

    def _fit(self, frame):
        classes = self.classes_.tolist()
        n = len(frame)
        # The vocabulary size, for the smoothing denominator
        d = frame.n_features

        class_counts, feature_counts, total_occurrences = self._count(frame, classes)

        log_priors = self.store_.get_map("log_priors")
        for c in classes:
            log_priors[c] = math.log(class_counts[c] / n)
        self.log_priors_ = log_priors

        smoothed = {
            (feature, c): (occurrences + 1.0) / (total_occurrences[c] + d)
            for (feature, c), occurrences in feature_counts.items()
        }
        self.features_ = set(frame.x_types)
        self._fit_likelihoods(smoothed)

        if self.verbose:
            print(f"Fitted {len(classes)} classes over {d} features")

    def _fit_likelihoods(self, smoothed):
        likelihoods = self.store_.get_map("log_likelihoods", big=True)
        for key, p in smoothed.items():
            likelihoods[key] = math.log(p)
        self.log_likelihoods_ = likelihoods


class MultinomialNaiveBayes(_BaseNaiveBayes):
    """
    Multinomial Naive Bayes.

    log P(f | c) = log((count(f, c) + 1) / (total(c) + d)), where total(c)
    is the sum of all feature occurrences in class c and d is the number of
    feature columns.

    Parameters
    ----------
    multi_probability_weighted : bool (default False)
        If True, each feature's log likelihood is multiplied by its value
        (its number of occurrences) at prediction time. If False every
        active feature counts once.

    n_jobs : int or None

    verbose : int

    Attributes
    ----------
    log_priors_ : dict
        class -> log prior

    log_likelihoods_ : dict
        (feature, class) -> log P(feature | class)
    """

    def __init__(self, *, multi_probability_weighted=False, n_jobs=None, verbose=0):
        self.multi_probability_weighted = multi_probability_weighted
        self.n_jobs = n_jobs
        self.verbose = verbose

    def _weighted(self):
        return self.multi_probability_weighted and not self._binarized

    def _scores(self, x):
        classes = self.classes_.tolist()
        scores = AssociativeArray(self.log_priors_)
        weighted = self._weighted()
        for feature, value in numeric_items(x):
            # Features unseen in training carry no information
            if feature not in self.features_:
                continue
            occurrences = value if weighted or value <= 0 else 1.0
            for c in classes:
                scores[c] += occurrences * self.log_likelihoods_[(feature, c)]
        return scores


class BinarizedNaiveBayes(MultinomialNaiveBayes):
    """
    Multinomial Naive Bayes on binarized features: occurrences are clipped
    to 1 both in fitting and in prediction.
    """

    _binarized = True


class BernoulliNaiveBayes(_BaseNaiveBayes):
    """
    Bernoulli Naive Bayes.

    Absent features contribute log(1 - P(f | c)). To avoid iterating over
    every feature for each prediction, the sum over all features of
    log(1 - P(f | c)) is precomputed per class; each active feature then
    adds log P(f | c) - log(1 - P(f | c)).

    Attributes
    ----------
    likelihoods_ : dict
        (feature, class) -> P(feature | class)

    sum_log_1_minus_p_ : dict
        class -> sum_f log(1 - P(f | class))
    """

    _binarized = True

    def _fit_likelihoods(self, smoothed):
        likelihoods = self.store_.get_map("likelihoods", big=True)
        likelihoods.update(smoothed)
        self.likelihoods_ = likelihoods
        sums = self.store_.get_map("sum_log_1_minus_p")
        for c in self.classes_.tolist():
            sums[c] = 0.0
        for (feature, c), p in likelihoods.items():
            sums[c] += _log_1_minus(p)
        self.sum_log_1_minus_p_ = sums

    def _scores(self, x):
        classes = self.classes_.tolist()
        scores = AssociativeArray(
            (c, self.log_priors_[c] + self.sum_log_1_minus_p_[c]) for c in classes
        )
        for feature, value in numeric_items(x):
            if feature not in self.features_ or value <= 0:
                continue
            for c in classes:
                p = self.likelihoods_[(feature, c)]
                scores[c] += math.log(p) - _log_1_minus(p)
        return scores
