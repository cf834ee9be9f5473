"""
Hierarchical agglomerative (bottom-up) clustering.
"""

import math

import numpy as np

from sparselearn.base import BaseSparseClusterer
from sparselearn.distances import get_distance
from sparselearn.maths import normalize
from sparselearn.records import AssociativeArray
from sparselearn.utils import check_option, parallel_apply


__all__ = ["AgglomerativeCluster", "HierarchicalAgglomerative", "LINKAGES"]


LINKAGES = ("single", "complete", "average")


class AgglomerativeCluster:
    """
    A cluster of records, with the sum of their feature vectors and their
    centroid.
    """

    def __init__(self, cluster_id):
        self.cluster_id = cluster_id
        self.size = 0
        self.xi_sum = AssociativeArray()
        self.centroid = AssociativeArray()
        self.members = []
        self.active = True

    def add(self, record_id, x):
        self.size += 1
        self.xi_sum.add_values(x)
        self.members.append(record_id)

    def merge(self, other):
        """Absorb `other`. The centroid becomes the size-weighted average."""
        self.size += other.size
        self.xi_sum.add_values(other.xi_sum)
        self.members.extend(other.members)
        self.update_centroid()

    def update_centroid(self):
        centroid = self.xi_sum.copy()
        if self.size > 0:
            centroid.multiply_values(1.0 / self.size)
        else:
            centroid.multiply_values(0.0)
        self.centroid = centroid

    def __repr__(self):
        return f"AgglomerativeCluster(cluster_id={self.cluster_id!r}, size={self.size})"


class HierarchicalAgglomerative(BaseSparseClusterer):
    """
    Hierarchical agglomerative clustering.

    Every record starts in its own cluster. The two closest active
    clusters are merged repeatedly, until either the closest pair is at
    least `max_distance_threshold` apart or only `min_clusters_threshold`
    clusters remain. Distances to the merged cluster follow the linkage
    rule:

    - single: the minimum of the two distances;
    - complete: the maximum;
    - average: the average weighted by the sizes of the merged clusters.

    Each cluster caches the id of its nearest neighbour. After a merge only
    the clusters whose nearest neighbour was one of the merged pair are
    rescanned; no linkage rule can bring another cluster closer than its
    cached nearest neighbour.

    Parameters
    ----------
    linkage : {'single', 'complete', 'average'} (default 'complete')

    distance : {'euclidean', 'manhattan', 'maximum'} (default 'euclidean')

    max_distance_threshold : float (default inf)

    min_clusters_threshold : int (default 2)

    n_jobs : int or None
        Number of threads for the all-pairs distance table.

    verbose : int

    Attributes
    ----------
    clusters_ : dict
        cluster id -> AgglomerativeCluster, for the remaining clusters.

    labels_ : ndarray
        Cluster id of every training record.

    n_merges_ : int
    """

    _select_lowest = True

    def __init__(
        self,
        *,
        linkage="complete",
        distance="euclidean",
        max_distance_threshold=math.inf,
        min_clusters_threshold=2,
        n_jobs=None,
        verbose=0,
    ):
        self.linkage = linkage
        self.distance = distance
        self.max_distance_threshold = max_distance_threshold
        self.min_clusters_threshold = min_clusters_threshold
        self.n_jobs = n_jobs
        self.verbose = verbose

    def _fit(self, frame):
        self._linkage = check_option("linkage", self.linkage, LINKAGES)
        self._distance = get_distance(self.distance)
        if self.min_clusters_threshold < 1:
            raise ValueError("min_clusters_threshold must be at least 1")

        clusters = self.store_.get_map("clusters")
        records = {}
        for cluster_id, (record_id, record) in enumerate(frame.items()):
            cluster = AgglomerativeCluster(cluster_id)
            cluster.add(record_id, record.x)
            cluster.update_centroid()
            clusters[cluster_id] = cluster
            records[cluster_id] = record.x

        ids = list(clusters)
        self.n_merges_ = 0
        with self.store_.temporary_map("tmp_distances", big=True) as distances, \
                self.store_.temporary_map("tmp_nearest") as nearest:

            def row(i):
                return [
                    (j, math.inf if i == j else self._distance(records[i], records[j]))
                    for j in ids
                ]

            for i, entries in zip(ids, parallel_apply(row, ids, self.n_jobs)):
                for j, d in entries:
                    distances[(i, j)] = d
            for i in ids:
                nearest[i] = self._nearest(i, clusters, distances)

            active = len(clusters)
            while active > self.min_clusters_threshold:
                if not self._merge_closest(clusters, distances, nearest):
                    break
                active -= 1
                self.n_merges_ += 1
                if self.verbose >= 2:
                    print(f"Merge #{self.n_merges_}: {active} active clusters")

        for cluster_id in [k for k, c in clusters.items() if not c.active]:
            del clusters[cluster_id]
        labels = {}
        for cluster_id, cluster in clusters.items():
            cluster.update_centroid()
            for record_id in cluster.members:
                labels[record_id] = cluster_id
        self.clusters_ = clusters
        self.labels_ = np.array([labels[record_id] for record_id in frame.ids()])
        if self.verbose:
            print(f"{self.n_merges_} merges, {len(clusters)} clusters")

    @staticmethod
    def _nearest(i, clusters, distances):
        nearest_id = None
        nearest_distance = math.inf
        for j, cluster in clusters.items():
            if j == i or not cluster.active:
                continue
            d = distances[(i, j)]
            if nearest_id is None or d < nearest_distance:
                nearest_id = j
                nearest_distance = d
        return nearest_id

    def _merge_closest(self, clusters, distances, nearest):
        """Merge the closest active pair. Returns False if nothing was merged."""
        closest_id = None
        min_distance = math.inf
        for i, cluster in clusters.items():
            if not cluster.active or nearest[i] is None:
                continue
            d = distances[(i, nearest[i])]
            if closest_id is None or d < min_distance:
                closest_id = i
                min_distance = d

        if closest_id is None or min_distance >= self.max_distance_threshold:
            return False

        c1 = clusters[closest_id]
        c2 = clusters[nearest[closest_id]]
        size1, size2 = c1.size, c2.size
        c1.merge(c2)
        c2.active = False

        for k, cluster in clusters.items():
            if not cluster.active:
                continue
            if k == c1.cluster_id:
                distances[(k, k)] = math.inf
                continue
            d1 = distances[(c1.cluster_id, k)]
            d2 = distances[(c2.cluster_id, k)]
            if self._linkage == "single":
                d = min(d1, d2)
            elif self._linkage == "complete":
                d = max(d1, d2)
            else:
                d = (size1 * d1 + size2 * d2) / (size1 + size2)
            distances[(c1.cluster_id, k)] = d
            distances[(k, c1.cluster_id)] = d

        for k, cluster in clusters.items():
            if not cluster.active:
                continue
            if k == c1.cluster_id or nearest[k] in (c1.cluster_id, c2.cluster_id):
                nearest[k] = self._nearest(k, clusters, distances)
        return True

    def _cluster_scores(self, x):
        distances = AssociativeArray(
            (cluster_id, self._distance(x, cluster.centroid))
            for cluster_id, cluster in self.clusters_.items()
        )
        return normalize(distances)

    def transform(self, X):
        """
        Normalized distances to every cluster centroid, of shape
        (n_samples, n_clusters), with columns in the order of
        `cluster_ids_`.
        """
        return self._score_matrix(X)
