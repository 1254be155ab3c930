"""
Value types - the primitive kinds a node field can hold.

Value types are compared by name only. The set available to an editor is an
immutable ``ValueTypeRegistry`` that is handed to ``GraphEditor`` at
construction, so two editors never share mutable type state.
"""

from typing import Iterable, Iterator, Optional
from pydantic import BaseModel, ConfigDict


class ValueType(BaseModel):
    """A named primitive kind (string, number, ...)."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""

    def __eq__(self, other) -> bool:
        if not isinstance(other, ValueType):
            return False
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)


STRING = ValueType(name="string", description="Single line of text")
TEXT = ValueType(name="text", description="Multi-line text")
NUMBER = ValueType(name="number", description="Integer or floating point number")
BOOLEAN = ValueType(name="boolean", description="True or false")
ENUM = ValueType(name="enum", description="One choice out of a fixed set")


class ValueTypeRegistry:
    """
    Read-only collection of value types, keyed by name.

    Registration order is preserved for iteration.
    """

    def __init__(self, value_types: Iterable[ValueType] = ()):
        types: dict[str, ValueType] = {}
        for value_type in value_types:
            if value_type.name in types:
                raise ValueError(f"Duplicate value type name: {value_type.name}")
            types[value_type.name] = value_type
        self._types = types

    def get(self, name: str) -> Optional[ValueType]:
        """Look up a value type by name."""
        return self._types.get(name)

    def names(self) -> list[str]:
        return list(self._types)

    def __contains__(self, item) -> bool:
        if isinstance(item, ValueType):
            return item.name in self._types
        return item in self._types

    def __iter__(self) -> Iterator[ValueType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)

    def __repr__(self) -> str:
        return f"ValueTypeRegistry({', '.join(self._types)})"


DEFAULT_VALUE_TYPES = ValueTypeRegistry([STRING, TEXT, NUMBER, BOOLEAN, ENUM])
