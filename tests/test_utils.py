import numpy as np
import pytest

from sparselearn.records import Dataframe, Record
from sparselearn.storage import ParameterStore
from sparselearn.utils import (
    ContractViolation,
    UnsupportedOptionError,
    check_dataframe,
    check_labels,
    check_option,
    map_chunks,
    parallel_apply,
    sharded_sum,
    weighted_sampling,
)


def test_contract_violation_message():
    err = ContractViolation("cluster is empty")
    assert err.message == "cluster is empty"
    assert str(err) == repr("cluster is empty")


def test_check_option():
    assert check_option("linkage", "Single", ("single", "complete")) == "single"
    with pytest.raises(UnsupportedOptionError) as excinfo:
        check_option("linkage", "ward", ("single", "complete"))
    assert isinstance(excinfo.value, ValueError)
    assert excinfo.value.value == "ward"


def test_check_dataframe():
    with pytest.raises(ValueError):
        check_dataframe([])
    with pytest.raises(ValueError):
        check_dataframe(Dataframe([Record({"a": 1})]), require_labels=True)
    frame = check_dataframe([{"a": 1}], ["x"], require_labels=True)
    assert len(frame) == 1


def test_check_labels():
    frame = Dataframe.from_xy([{"a": 1}] * 3, ["b", "a", "b"])
    assert check_labels(frame) == ["a", "b"]
    assert check_labels(frame, sort=False) == ["b", "a"]
    with pytest.raises(ValueError):
        check_labels(Dataframe.from_xy([{"a": 1}] * 2, ["a", "a"]))
    with pytest.raises(ValueError):
        check_labels(Dataframe.from_xy([{"a": 1}] * 3, [0.5, 1.5, 2.25]))


@pytest.mark.parametrize("n_jobs", [None, 1, 3])
def test_parallel_apply_keeps_order(n_jobs):
    items = list(range(23))
    assert parallel_apply(lambda i: i * i, items, n_jobs) == [i * i for i in items]


def test_map_chunks_covers_every_item():
    chunks = map_chunks(list, list(range(10)), n_jobs=4)
    assert len(chunks) == 4
    assert sum(chunks, []) == list(range(10))


@pytest.mark.parametrize("n_jobs", [None, 2, 4])
def test_sharded_sum(n_jobs):
    items = list(range(100))

    def partial(chunk):
        counts = {}
        for i in chunk:
            key = i % 3
            counts[key] = counts.get(key, 0) + i
        return counts

    expected = {k: sum(i for i in items if i % 3 == k) for k in range(3)}
    assert sharded_sum(partial, items, n_jobs) == expected


def test_weighted_sampling():
    rng = np.random.RandomState(0)
    assert weighted_sampling({"a": 0.0, "b": 1.0}, rng) == "b"
    draws = {weighted_sampling({"a": 0.0, "b": 0.0}, rng) for _ in range(50)}
    assert draws == {"a", "b"}
    with pytest.raises(ContractViolation):
        weighted_sampling({}, rng)


def test_store_maps_and_hints():
    store = ParameterStore("test")
    weights = store.get_map("weights", big=True)
    weights["a"] = 1.0
    assert store.get_map("weights") is weights
    assert store.hints("weights").big
    assert not store.hints("weights").temporary
    assert "weights" in store
    store.drop_map("weights")
    assert "weights" not in store
    with pytest.raises(ContractViolation):
        store.drop_map("weights")


def test_temporary_map_is_dropped():
    store = ParameterStore()
    with store.temporary_map("tmp", initial={"a": 1.0}) as scratch:
        assert scratch == {"a": 1.0}
        assert store.hints("tmp").temporary
    assert "tmp" not in store
    assert store.names() == []


def test_temporary_map_is_dropped_on_exception():
    store = ParameterStore()
    with pytest.raises(RuntimeError):
        with store.temporary_map("tmp") as scratch:
            scratch["a"] = 1.0
            raise RuntimeError("boom")
    assert "tmp" not in store


def test_temporary_map_name_clash():
    store = ParameterStore()
    store.get_map("tmp")
    with pytest.raises(ContractViolation):
        with store.temporary_map("tmp"):
            pass
    # The existing map survives the failed attempt
    assert "tmp" in store
