"""
Registries that let parameters select a numerical routine by name.

Two are used by the library: ``geometry.metrics.tet_metrics`` (tet quality
measures picked by ``MappingParams.tet_metric``) and
``mapping.interpolation_methods`` (field transfer policies picked by
``Method``). A name can only be registered once, so a typo in a second
registration cannot silently replace a policy.

Usage
-----
    tet_metrics = MethodRegistry("tet metric")

    @tet_metrics.register("volume")
    def signed_volume(p0, p1, p2, p3): ...

    tet_metrics["volume"]
    tet_metrics.available()  # ["volume"]
"""

from typing import Callable, Optional


class MethodRegistry:
    """Name -> callable lookup with readable errors.

    Parameters
    ----------
    name : str
        What is being selected, used in error messages (e.g. "tet metric").
    """

    def __init__(self, name: str):
        self.name = name
        self._methods: dict[str, Callable] = {}

    def register(self, key: str, fn: Optional[Callable] = None):
        """Register ``fn`` under ``key``; without ``fn`` return a decorator.

        Raises
        ------
        ValueError
            If ``key`` is already registered.
        """
        if fn is None:
            return lambda func: self.register(key, func)
        if key in self._methods:
            raise ValueError(f"{self.name} {key!r} is already registered")
        self._methods[key] = fn
        return fn

    def __getitem__(self, key: str) -> Callable:
        try:
            return self._methods[key]
        except KeyError:
            raise KeyError(
                f"Unknown {self.name}: {key!r}. Available: {self.available()}"
            ) from None

    def __contains__(self, key: str) -> bool:
        return key in self._methods

    def available(self) -> list[str]:
        """Registered names, in registration order."""
        return list(self._methods)
