"""
K-means and k-prototypes clustering over sparse feature records.
"""

import math
import warnings

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.utils import check_random_state

from sparselearn.base import BaseSparseClusterer
from sparselearn.distances import get_distance
from sparselearn.maths import normalize, select_min_key
from sparselearn.records import AssociativeArray, DataType, numeric_items
from sparselearn.utils import ContractViolation, check_option, parallel_apply, weighted_sampling


__all__ = ["INITIALIZATIONS", "Kmeans", "KmeansCluster"]


INITIALIZATIONS = (
    "forgy",
    "set_first_k",
    "random_partition",
    "furthest_first",
    "subset_furthest_first",
    "plus_plus",
)

KMEANS_DISTANCES = ("euclidean", "manhattan")


class KmeansCluster:
    """
    A k-means cluster: a running sum of the assigned feature vectors and a
    centroid that is only recomputed by `update_cluster_parameters`.
    """

    def __init__(self, cluster_id):
        self.cluster_id = cluster_id
        self.size = 0
        self.xi_sum = AssociativeArray()
        self.centroid = AssociativeArray()

    def add(self, x):
        self.size += 1
        self.xi_sum.add_values(x)

    def remove(self, x):
        raise ContractViolation("records cannot be removed from a k-means cluster")

    def reset(self):
        """Forget the assigned records but keep the centroid."""
        self.xi_sum.clear()
        self.size = 0

    def update_cluster_parameters(self):
        """
        Recompute the centroid as the mean of the assigned records. An
        empty cluster gets a zero centroid over its previous keys.

        Returns whether the centroid changed.
        """
        if self.size > 0:
            centroid = self.xi_sum.copy().multiply_values(1.0 / self.size)
        else:
            centroid = AssociativeArray((key, 0.0) for key in self.centroid)
        changed = centroid != self.centroid
        self.centroid = centroid
        return changed

    def __repr__(self):
        return f"KmeansCluster(cluster_id={self.cluster_id!r}, size={self.size})"


class Kmeans(BaseSparseClusterer):
    """
    K-means clustering, with the k-prototypes weighting of non-numerical
    columns.

    Every column gets a weight in the distance. In the unweighted version
    numerical columns weigh 1 and all other columns (boolean, ordinal or
    dummy-coded categorical) weigh `categorical_gamma_multiplier`. With
    `weighted=True` the weights are estimated from the data: 1 / (2 var)
    for numerical columns and 1 / (1 - p^2) for the others, where p is the
    fraction of records in which the column is active; the latter is then
    multiplied by `categorical_gamma_multiplier`.

    Parameters
    ----------
    k : int (default 2)

    initialization : str (default 'plus_plus')
        One of:

        - 'forgy' / 'set_first_k': the first k records are the centroids;
        - 'random_partition': record i goes to cluster i % k;
        - 'furthest_first': each new centroid is the record furthest from
          the existing ones;
        - 'subset_furthest_first': the same, scanning only the first
          max(ceil(c k log2 k), k) records, with c =
          `subset_furthest_first_c`;
        - 'plus_plus': k-means++ sampling proportional to the distance to
          the nearest existing centroid.

    distance : {'euclidean', 'manhattan'} (default 'euclidean')

    max_iter : int (default 200)

    subset_furthest_first_c : float (default 2.0)

    categorical_gamma_multiplier : float (default 1.0)

    weighted : bool (default False)

    random_state : None, int or RandomState

    n_jobs : int or None

    verbose : int

    callback : callable or None
        Called as callback(self) after each iteration.

    Attributes
    ----------
    clusters_ : dict
        cluster id -> KmeansCluster

    feature_weights_ : dict
        feature -> weight

    labels_ : ndarray

    n_iter_ : int
    """

    _select_lowest = True

    def __init__(
        self,
        k=2,
        *,
        initialization="plus_plus",
        distance="euclidean",
        max_iter=200,
        subset_furthest_first_c=2.0,
        categorical_gamma_multiplier=1.0,
        weighted=False,
        random_state=None,
        n_jobs=None,
        verbose=0,
        callback=None,
    ):
        self.k = k
        self.initialization = initialization
        self.distance = distance
        self.max_iter = max_iter
        self.subset_furthest_first_c = subset_furthest_first_c
        self.categorical_gamma_multiplier = categorical_gamma_multiplier
        self.weighted = weighted
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.verbose = verbose
        self.callback = callback

    def _fit(self, frame):
        initialization = check_option("initialization", self.initialization, INITIALIZATIONS)
        check_option("distance", self.distance, KMEANS_DISTANCES)
        if self.k < 1:
            raise ValueError("k must be at least 1")
        if self.k > len(frame):
            raise ValueError(f"k={self.k} is larger than the number of records ({len(frame)})")
        random_state = check_random_state(self.random_state)

        self.feature_weights_ = self._feature_weights(frame)
        self._distance = get_distance(self.distance, self.feature_weights_)

        clusters = self.store_.get_map("clusters")
        self.clusters_ = clusters
        self._initialize_clusters(frame, clusters, initialization, random_state)
        self.labels_ = np.array(self._calculate_clusters(frame, clusters))

    def _feature_weights(self, frame):
        gamma = self.categorical_gamma_multiplier
        x_types = frame.x_types
        weights = self.store_.get_map("feature_weights")
        if not self.weighted:
            for feature, data_type in x_types.items():
                weights[feature] = 1.0 if data_type == DataType.NUMERICAL else gamma
            return weights

        n = len(frame)
        with self.store_.temporary_map("tmp_categorical_frequencies") as frequencies, \
                self.store_.temporary_map("tmp_variance_sum_x") as sum_x, \
                self.store_.temporary_map("tmp_variance_sum_x_square") as sum_x_square:
            for record in frame:
                for feature, value in numeric_items(record.x):
                    if x_types.get(feature) != DataType.NUMERICAL:
                        frequencies[feature] = frequencies.get(feature, 0.0) + 1.0
                    else:
                        sum_x[feature] = sum_x.get(feature, 0.0) + value
                        sum_x_square[feature] = sum_x_square.get(feature, 0.0) + value * value

            for feature, data_type in x_types.items():
                if data_type != DataType.NUMERICAL:
                    percentage = frequencies.get(feature, 0.0) / n
                    weight = 1.0 - percentage * percentage
                else:
                    mean = sum_x.get(feature, 0.0) / n
                    weight = 2.0 * (sum_x_square.get(feature, 0.0) / n - mean * mean)
                if weight > 0:
                    weight = 1.0 / weight
                if data_type != DataType.NUMERICAL:
                    weight *= gamma
                weights[feature] = weight
        return weights

    def _min_distance(self, x, clusters):
        return min(
            (self._distance(x, cluster.centroid) for cluster in clusters.values()),
            default=math.inf,
        )

    def _add_initial_cluster(self, clusters, x):
        cluster_id = len(clusters)
        cluster = KmeansCluster(cluster_id)
        cluster.add(x)
        cluster.update_cluster_parameters()
        clusters[cluster_id] = cluster

    def _initialize_clusters(self, frame, clusters, initialization, random_state):
        k = self.k
        if initialization in ("forgy", "set_first_k"):
            for i, record in enumerate(frame):
                if i >= k:
                    break
                self._add_initial_cluster(clusters, record.x)

        elif initialization == "random_partition":
            for i, record in enumerate(frame):
                cluster_id = i % k
                if cluster_id not in clusters:
                    clusters[cluster_id] = KmeansCluster(cluster_id)
                clusters[cluster_id].add(record.x)
            for cluster in clusters.values():
                cluster.update_cluster_parameters()

        elif initialization in ("furthest_first", "subset_furthest_first"):
            sample_size = len(frame)
            if initialization == "subset_furthest_first":
                log_k = math.log2(k) if k > 1 else 0.0
                sample_size = max(math.ceil(self.subset_furthest_first_c * k * log_k), k)
            selected = set()
            items = frame.records()
            for _ in range(k):
                selected_id = None
                max_min_distance = -math.inf
                scanned = 0
                for record_id, record in enumerate(items):
                    if scanned >= sample_size:
                        break
                    if record_id in selected:
                        continue
                    scanned += 1
                    min_distance = self._min_distance(record.x, clusters)
                    if min_distance > max_min_distance:
                        max_min_distance = min_distance
                        selected_id = record_id
                selected.add(selected_id)
                self._add_initial_cluster(clusters, items[selected_id].x)

        else:
            selected = set()
            items = frame.records()
            for _ in range(k):
                with self.store_.temporary_map("tmp_min_cluster_distance") as min_distances:
                    candidates = [i for i in range(len(items)) if i not in selected]
                    distances = parallel_apply(
                        lambda i: self._min_distance(items[i].x, clusters) if clusters else 1.0,
                        candidates,
                        self.n_jobs,
                    )
                    min_distances.update(zip(candidates, distances))
                    normalize(min_distances)
                    selected_id = weighted_sampling(min_distances, random_state)
                selected.add(selected_id)
                self._add_initial_cluster(clusters, items[selected_id].x)

    def _calculate_clusters(self, frame, clusters):
        records = frame.records()
        self._start_iterations()
        assignments = []
        for iteration in range(self.max_iter):
            for cluster in clusters.values():
                cluster.reset()

            assignments = parallel_apply(
                lambda record: select_min_key(
                    {cid: self._distance(record.x, c.centroid) for cid, c in clusters.items()}
                ),
                records,
                self.n_jobs,
            )
            for record, cluster_id in zip(records, assignments):
                clusters[cluster_id].add(record.x)

            changed = False
            for cluster in clusters.values():
                changed |= cluster.update_cluster_parameters()

            if self.verbose:
                print("Iteration #", iteration)
            self._on_iteration(iteration)
            if not changed:
                break
        else:
            warnings.warn(
                f"k-means did not converge within max_iter={self.max_iter} iterations.",
                ConvergenceWarning,
            )
        return assignments

    def _cluster_scores(self, x):
        distances = AssociativeArray(
            (cluster_id, self._distance(x, cluster.centroid))
            for cluster_id, cluster in self.clusters_.items()
        )
        return normalize(distances)

    def transform(self, X):
        """
        Normalized weighted distances to every centroid, of shape
        (n_samples, n_clusters), with columns in the order of
        `cluster_ids_`.
        """
        return self._score_matrix(X)
