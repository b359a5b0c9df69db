"""
Explicit name registry for classes referenced from the XML configuration.

Configuration documents name row, collection and converter classes by string.
Instead of importing arbitrary modules by name, every class that may appear in a
configuration registers itself here (usually with the ``register_type`` decorator)
and configuration loading only resolves names that are already known.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Type, TypeVar

from hps_conditions.errors import ConfigurationError

T = TypeVar("T", bound=type)


def qualified_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


class TypeRegistry:
    def __init__(self) -> None:
        self._types: Dict[str, type] = {}

    def register(self, cls: T, name: Optional[str] = None) -> T:
        """
        Register ``cls`` under its qualified name, its short name and ``name``.

        Returns the class so this can be used as a decorator.
        """
        keys = [qualified_name(cls), cls.__name__]
        if name:
            keys.append(name)
        for key in keys:
            existing = self._types.get(key)
            if existing is not None and existing is not cls:
                raise ValueError(
                    f"Type name '{key}' is already registered to {qualified_name(existing)}"
                )
        for key in keys:
            self._types[key] = cls
        return cls

    def resolve(self, name: str) -> Type:
        if not name:
            raise ConfigurationError("Empty class name in configuration.")
        try:
            return self._types[name.strip()]
        except KeyError:
            raise ConfigurationError(
                f"The class '{name}' is not a registered conditions type."
            ) from None

    def names(self) -> List[str]:
        return sorted(self._types)

    def copy(self) -> "TypeRegistry":
        clone = TypeRegistry()
        clone._types = dict(self._types)
        return clone

    def update(self, classes: Iterable[type]) -> None:
        for cls in classes:
            self.register(cls)

    def __contains__(self, name: object) -> bool:
        return name in self._types


TYPES = TypeRegistry()


def register_type(cls: T) -> T:
    """Class decorator adding ``cls`` to the global ``TYPES`` registry."""
    return TYPES.register(cls)
