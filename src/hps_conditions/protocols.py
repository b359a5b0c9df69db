"""
Capabilities checked when configuration names row, collection and converter classes.

They are structural: a class qualifies by providing the methods, not by inheriting
from a particular base. Only methods are declared so that ``issubclass`` checks
work on the classes themselves.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, Mapping, Protocol, runtime_checkable

if TYPE_CHECKING:
    from hps_conditions.core.manager import DatabaseConditionsManager
    from hps_conditions.core.schema import TableMetaData


@runtime_checkable
class ConditionsObjectLike(Protocol):
    """A persistable conditions row."""

    @classmethod
    def from_row(
        cls, row: Mapping[str, Any], table_meta: "TableMetaData"
    ) -> "ConditionsObjectLike": ...

    def to_row(self, table_meta: "TableMetaData") -> dict[str, Any]: ...


@runtime_checkable
class ConditionsCollectionLike(Protocol):
    """A collection of conditions rows sharing one collection id."""

    def add(self, obj: Any) -> None: ...

    def __iter__(self) -> Iterator[Any]: ...

    def __len__(self) -> int: ...


@runtime_checkable
class ConditionsConverterLike(Protocol):
    """
    Produces one type of conditions payload on a cache miss.

    Implementations also carry a ``conditions_type`` class attribute naming the
    payload type they produce.
    """

    def produce(self, manager: "DatabaseConditionsManager", name: str) -> Any: ...
