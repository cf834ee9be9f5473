import numpy as np
import pytest
from numpy.testing import assert_allclose

from sparselearn.records import (
    AssociativeArray,
    DataType,
    Dataframe,
    Record,
    numeric_items,
    to_double,
)


def test_to_double():
    assert to_double(None) is None
    assert to_double(True) == 1.0
    assert to_double(False) == 0.0
    assert to_double(np.bool_(True)) == 1.0
    assert to_double(3) == 3.0
    assert isinstance(to_double(np.int64(2)), float)
    with pytest.raises(TypeError):
        to_double("red")


def test_add_subtract_round_trip():
    """
    Adding and then subtracting the same vector restores the original
    values.
    """
    rng = np.random.default_rng(0)
    original = AssociativeArray((f"f{i}", rng.normal()) for i in range(20))
    other = AssociativeArray((f"f{i}", rng.normal()) for i in range(0, 20, 2))

    x = original.copy()
    x.add_values(other).subtract_values(other)
    assert set(x) == set(original)
    assert_allclose([x[k] for k in original], list(original.values()), atol=1e-12)


def test_add_values_missing_keys_are_zero():
    x = AssociativeArray({"a": 1.0})
    x.add_values({"a": 2.0, "b": True, "c": None})
    assert x == {"a": 3.0, "b": 1.0}
    x.subtract_values({"d": 4})
    assert x["d"] == -4.0


def test_multiply_and_copy():
    x = AssociativeArray({"a": 2.0, "b": -1.0})
    y = x.copy()
    y.multiply_values(3.0)
    assert y == {"a": 6.0, "b": -3.0}
    assert x == {"a": 2.0, "b": -1.0}
    assert isinstance(y, AssociativeArray)


def test_overwrite_and_get_double():
    x = AssociativeArray({"a": 1})
    x.overwrite({"b": False})
    assert list(x) == ["b"]
    assert x.get_double("b") == 0.0
    assert x.get_double("missing") is None


def test_to_vector():
    feature_ids = {"a": 0, "b": 1, "c": 2}
    x = AssociativeArray({"c": 2.0, "a": True, "unknown": 7.0})
    assert_allclose(x.to_vector(feature_ids), [1.0, 0.0, 2.0])
    # Plain mappings can be densified too
    assert_allclose(AssociativeArray.to_vector({"b": 5}, feature_ids), [0.0, 5.0, 0.0])


def test_numeric_items_skips_zero_and_missing():
    assert list(numeric_items({"a": 0, "b": None, "c": 2, "d": True})) == [("c", 2.0), ("d", 1.0)]


def test_data_type_inference():
    assert DataType.infer(True) == DataType.BOOLEAN
    assert DataType.infer(1.5) == DataType.NUMERICAL
    assert DataType.infer(3) == DataType.NUMERICAL
    assert DataType.infer("red") == DataType.CATEGORICAL
    assert DataType.infer(None) is None
    assert DataType.ORDINAL.is_numeric
    assert not DataType.CATEGORICAL.is_numeric


def test_record_is_immutable():
    record = Record(AssociativeArray({"a": 1.0}), "yes")
    with pytest.raises(AttributeError):
        record.y = "no"
    updated = record._replace(y_predicted="no")
    assert record.y_predicted is None
    assert updated.y_predicted == "no"


def test_dataframe_ids_and_meta():
    frame = Dataframe(x_types={"rank": DataType.ORDINAL})
    first = frame.append(Record({"rank": 1, "flag": True}, "a"))
    second = frame.append(Record({"size": 2.5, "colour": "red"}, "b"))
    assert (first, second) == (0, 1)
    assert isinstance(frame.get(0).x, AssociativeArray)
    assert frame.x_types == {
        "rank": DataType.ORDINAL,
        "flag": DataType.BOOLEAN,
        "size": DataType.NUMERICAL,
        "colour": DataType.CATEGORICAL,
    }
    assert frame.n_features == 4
    assert frame.y_type == DataType.CATEGORICAL

    # Removal keeps the metadata as a superset until it is recalculated
    frame.remove(second)
    assert len(frame) == 1
    assert "size" in frame.x_types
    frame.recalculate_meta()
    assert set(frame.x_types) == {"rank", "flag"}

    # Ids are never reused
    assert frame.append(Record({"size": 1.0})) == 2
    assert frame.ids() == [0, 2]


def test_dataframe_set_unknown_id():
    frame = Dataframe([Record({"a": 1})])
    frame.set(0, Record(AssociativeArray({"a": 2})))
    assert frame.get(0).x["a"] == 2
    with pytest.raises(KeyError):
        frame.set(5, Record(AssociativeArray()))


def test_from_xy_array():
    X = np.array([[1.0, 0.0, 2.0], [0.0, 3.0, 0.0]])
    frame = Dataframe.from_xy(X, np.array([1, 0]))
    records = frame.records()
    assert records[0].x == {0: 1.0, 2: 2.0}
    assert records[1].x == {1: 3.0}
    assert [r.y for r in records] == [1, 0]
    assert Dataframe.from_xy(frame) is frame


def test_from_xy_length_mismatch():
    with pytest.raises(ValueError):
        Dataframe.from_xy([{"a": 1}, {"a": 2}], ["x"])
    with pytest.raises(ValueError):
        Dataframe.from_xy(np.zeros(3))
