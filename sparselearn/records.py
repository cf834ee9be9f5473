"""
Feature records and the small in-memory dataframe that the estimators in
sparselearn consume.

An observation is a sparse, named feature vector (an `AssociativeArray`)
together with an optional label. Missing keys are treated as zero by the
arithmetic helpers, so records only need to carry their active features.
"""

from __future__ import annotations

import enum
import numbers
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, NamedTuple, Optional

import numpy as np


__all__ = [
    "AssociativeArray",
    "DataType",
    "Dataframe",
    "Record",
    "numeric_items",
    "to_double",
]


def to_double(value) -> Optional[float]:
    """
    Resolve a feature value to a float.

    Booleans map to 1.0 / 0.0 and None stays None. Anything that is not a
    number (e.g. a categorical string) is a TypeError, since it has no
    meaning in numeric computation.
    """
    if value is None:
        return None
    if isinstance(value, (bool, np.bool_)):
        return 1.0 if value else 0.0
    if isinstance(value, numbers.Number):
        return float(value)
    raise TypeError(f"non-numeric feature value {value!r} used in numeric computation")


def numeric_items(x: Mapping) -> Iterator[tuple[Any, float]]:
    """Yield (feature, value) for the non-missing, non-zero values of `x`."""
    for key, value in x.items():
        value = to_double(value)
        if value:
            yield key, value


class DataType(enum.Enum):
    """The column types a Dataframe tracks."""

    BOOLEAN = "boolean"
    ORDINAL = "ordinal"
    NUMERICAL = "numerical"
    CATEGORICAL = "categorical"

    @classmethod
    def infer(cls, value) -> Optional["DataType"]:
        if value is None:
            return None
        if isinstance(value, (bool, np.bool_)):
            return cls.BOOLEAN
        if isinstance(value, numbers.Number):
            return cls.NUMERICAL
        return cls.CATEGORICAL

    @property
    def is_numeric(self) -> bool:
        return self in (DataType.NUMERICAL, DataType.ORDINAL, DataType.BOOLEAN)


class AssociativeArray(dict):
    """
    An ordered mapping from feature keys to values with key-wise arithmetic.

    Keys can be any hashable feature identifier: strings, integers or tuples
    such as (feature, class). The arithmetic methods mutate the array in
    place and treat missing keys as 0.
    """

    def copy(self) -> "AssociativeArray":
        return AssociativeArray(self)

    def overwrite(self, mapping: Mapping) -> None:
        self.clear()
        self.update(mapping)

    def get_double(self, key) -> Optional[float]:
        return to_double(self.get(key))

    def add_values(self, other: Mapping) -> "AssociativeArray":
        """Add `other` to this array key by key."""
        for key, value in other.items():
            value = to_double(value)
            if value is None:
                continue
            previous = self.get_double(key)
            self[key] = value if previous is None else previous + value
        return self

    def subtract_values(self, other: Mapping) -> "AssociativeArray":
        """Subtract `other` from this array key by key."""
        for key, value in other.items():
            value = to_double(value)
            if value is None:
                continue
            previous = self.get_double(key)
            self[key] = -value if previous is None else previous - value
        return self

    def multiply_values(self, multiplier: float) -> "AssociativeArray":
        for key in self:
            value = self.get_double(key)
            if value is not None:
                self[key] = value * multiplier
        return self

    def to_vector(self, feature_ids: Mapping, dtype=float) -> np.ndarray:
        """
        Densify into a numpy vector, using `feature_ids` (feature -> column
        index). Features absent from `feature_ids` are ignored.
        """
        xi = np.zeros(len(feature_ids), dtype=dtype)
        for key, value in self.items():
            column = feature_ids.get(key)
            if column is None:
                continue
            value = to_double(value)
            if value is not None:
                xi[column] = value
        return xi

    def __repr__(self):
        return f"AssociativeArray({dict.__repr__(self)})"


class Record(NamedTuple):
    """
    One observation. Records are immutable: use `record._replace(...)` to
    attach predictions.
    """

    x: AssociativeArray
    y: Any = None
    y_predicted: Any = None
    y_predicted_probabilities: Optional[AssociativeArray] = None


class Dataframe:
    """
    An ordered collection of Records with per-column type metadata.

    Record ids are stable integers assigned on insertion. Removing records
    does not recompute the column metadata, so `x_types` is always a
    superset of the columns actually present until `recalculate_meta()` is
    called.

    Parameters
    ----------
    records : iterable of Record, optional

    x_types : mapping of feature -> DataType, optional
        Declared column types. Declared types override the inferred ones;
        this is the only way to mark a column as ORDINAL.
    """

    def __init__(self, records: Iterable[Record] = (), x_types: Optional[Mapping] = None):
        self._records: dict[int, Record] = {}
        self._next_id = 0
        self._declared_types = dict(x_types or {})
        self.x_types: dict[Any, DataType] = dict(self._declared_types)
        self.y_type: Optional[DataType] = None
        for record in records:
            self.append(record)

    @classmethod
    def from_xy(cls, X, y=None, x_types: Optional[Mapping] = None) -> "Dataframe":
        """
        Build a Dataframe from a sequence of mappings (or a 2d array, whose
        column indices become the feature keys) and optional labels `y`.
        An existing Dataframe is returned unchanged.
        """
        if isinstance(X, Dataframe):
            return X
        if isinstance(X, np.ndarray):
            if X.ndim != 2:
                raise ValueError("expected a 2d array of observations")
            rows = [
                AssociativeArray((j, value) for j, value in enumerate(row) if value != 0)
                for row in X.tolist()
            ]
        else:
            rows = [AssociativeArray(row) for row in X]
        if y is None:
            labels = [None] * len(rows)
        else:
            labels = list(np.asarray(y).tolist())
            if len(labels) != len(rows):
                raise ValueError(
                    f"X and y have inconsistent numbers of samples: {len(rows)} != {len(labels)}"
                )
        return cls((Record(x, label) for x, label in zip(rows, labels)), x_types=x_types)

    def append(self, record: Record) -> int:
        if not isinstance(record.x, AssociativeArray):
            record = record._replace(x=AssociativeArray(record.x))
        record_id = self._next_id
        self._records[record_id] = record
        self._next_id += 1
        self._update_meta(record)
        return record_id

    def remove(self, record_id: int) -> Record:
        return self._records.pop(record_id)

    def set(self, record_id: int, record: Record) -> None:
        if record_id not in self._records:
            raise KeyError(record_id)
        self._records[record_id] = record

    def get(self, record_id: int) -> Record:
        return self._records[record_id]

    def recalculate_meta(self) -> None:
        self.x_types = dict(self._declared_types)
        self.y_type = None
        for record in self._records.values():
            self._update_meta(record)

    def _update_meta(self, record: Record) -> None:
        for key, value in record.x.items():
            if key not in self.x_types:
                inferred = DataType.infer(value)
                if inferred is not None:
                    self.x_types[key] = inferred
        if self.y_type is None and record.y is not None:
            self.y_type = DataType.infer(record.y)

    @property
    def n_features(self) -> int:
        return len(self.x_types)

    def items(self) -> Iterator[tuple[int, Record]]:
        return iter(self._records.items())

    def ids(self) -> list[int]:
        return list(self._records)

    def records(self) -> list[Record]:
        return list(self._records.values())

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self):
        return f"Dataframe(n_records={len(self)}, n_features={self.n_features})"
