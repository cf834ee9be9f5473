"""
The parameter store owned by one fitted model.

A store hands out named maps for the learned state (weights, priors,
cluster tables) and scoped temporary maps for per-iteration scratch
tables. Temporary maps are dropped when their `with` block exits, on every
exit path.
"""

from contextlib import contextmanager
from typing import NamedTuple

from sparselearn.utils import ContractViolation


__all__ = ["MapHints", "ParameterStore"]


class MapHints(NamedTuple):
    """Size and concurrency hints recorded for each map."""

    big: bool = False
    concurrent: bool = False
    temporary: bool = False


class ParameterStore:
    """
    Named maps for one model instance.

    Parameters
    ----------
    name : str
        Used in error messages only.
    """

    def __init__(self, name="model"):
        self.name = name
        self._maps = {}
        self._hints = {}

    def get_map(self, name, *, big=False, concurrent=False):
        """Get the map called `name`, creating it if necessary."""
        if name not in self._maps:
            self._maps[name] = {}
            self._hints[name] = MapHints(big=big, concurrent=concurrent)
        return self._maps[name]

    def drop_map(self, name):
        """Dispose of the map called `name`."""
        if name not in self._maps:
            raise ContractViolation(f"{self.name}: cannot drop unknown map {name!r}")
        del self._maps[name]
        del self._hints[name]

    @contextmanager
    def temporary_map(self, name, *, big=False, concurrent=False, initial=None):
        """
        Context manager yielding a fresh scratch map that is dropped on
        exit. `initial`, if given, seeds the map with a copy of its items.
        """
        if name in self._maps:
            raise ContractViolation(f"{self.name}: temporary map {name!r} already exists")
        scratch = self.get_map(name, big=big, concurrent=concurrent)
        self._hints[name] = self._hints[name]._replace(temporary=True)
        if initial is not None:
            scratch.update(initial)
        try:
            yield scratch
        finally:
            self.drop_map(name)

    def hints(self, name):
        return self._hints[name]

    def names(self):
        return list(self._maps)

    def __contains__(self, name):
        return name in self._maps

    def __repr__(self):
        return f"ParameterStore({self.name!r}, maps={self.names()})"
