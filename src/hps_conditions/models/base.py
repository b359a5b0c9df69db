from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Generic,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Type,
    TypeVar,
)

import pandas as pd
from sqlmodel import Field, SQLModel

if TYPE_CHECKING:
    from hps_conditions.core.schema import TableMetaData


class ConditionsObject(SQLModel):
    """
    Base for one row of a conditions table.

    ``id`` always holds the table's key column, whatever that column is called in
    the database. ``collection_id`` groups rows loaded together as one calibration
    set.
    """

    id: Optional[int] = Field(default=None, description="Row key.")
    collection_id: Optional[int] = Field(
        default=None, description="Collection the row belongs to."
    )

    @classmethod
    def from_row(
        cls, row: Mapping[str, Any], table_meta: "TableMetaData"
    ) -> "ConditionsObject":
        data = dict(row)
        if table_meta.key != "id" and table_meta.key in data:
            data["id"] = data.pop(table_meta.key)
        known = cls.model_fields
        return cls.model_validate({k: v for k, v in data.items() if k in known})

    def to_row(self, table_meta: "TableMetaData") -> dict[str, Any]:
        """Field values in the table's declared column order (key excluded)."""
        return {name: getattr(self, name) for name in table_meta.fields}


ObjectT = TypeVar("ObjectT", bound=ConditionsObject)


class ConditionsObjectCollection(Generic[ObjectT]):
    """
    Ordered set of rows from one table sharing a collection id.

    Subclasses set ``object_type`` so that ``add`` rejects rows of the wrong type.
    """

    object_type: ClassVar[Optional[Type[ConditionsObject]]] = None

    def __init__(
        self,
        objects: Optional[Iterable[ObjectT]] = None,
        table_meta: Optional["TableMetaData"] = None,
        collection_id: Optional[int] = None,
    ) -> None:
        self.table_meta = table_meta
        self.collection_id = collection_id
        self._objects: List[ObjectT] = []
        for obj in objects or []:
            self.add(obj)

    def add(self, obj: ObjectT) -> None:
        if self.object_type is not None and not isinstance(obj, self.object_type):
            raise TypeError(
                f"{type(self).__name__} only accepts {self.object_type.__name__}, "
                f"got {type(obj).__name__}"
            )
        if self.collection_id is not None and obj.collection_id is None:
            obj.collection_id = self.collection_id
        self._objects.append(obj)

    @property
    def objects(self) -> List[ObjectT]:
        return list(self._objects)

    def find(self, **criteria: Any) -> List[ObjectT]:
        """Rows whose attributes equal every keyword given."""
        return [
            obj
            for obj in self._objects
            if all(getattr(obj, key, None) == value for key, value in criteria.items())
        ]

    def sort(self, key: Callable[[ObjectT], Any]) -> None:
        self._objects.sort(key=key)

    def to_dataframe(self) -> pd.DataFrame:
        columns: Optional[List[str]] = None
        if self.table_meta is not None:
            columns = ["id", "collection_id"] + [
                f for f in self.table_meta.fields if f != "collection_id"
            ]
        rows = [obj.model_dump() for obj in self._objects]
        df = pd.DataFrame(rows, columns=columns)
        return df

    def __iter__(self) -> Iterator[ObjectT]:
        return iter(self._objects)

    def __len__(self) -> int:
        return len(self._objects)

    def __getitem__(self, index: int) -> ObjectT:
        return self._objects[index]

    def __repr__(self) -> str:
        table = self.table_meta.table_name if self.table_meta else None
        return (
            f"{type(self).__name__}(table={table!r}, "
            f"collection_id={self.collection_id!r}, size={len(self)})"
        )
