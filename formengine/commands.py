"""
Command types for FormSession control flow.

Commands mirror the collaborator interface one-to-one and can be passed to
FormSession.handle() instead of calling the methods directly.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping
import copy


@dataclass(frozen=True)
class FormSnapshot:
    """
    Read-only view of the data store at rest.

    Rules:
    - Immutable after creation
    - Copied on construction, so later store writes never show through
    - Serializable to/from JSON

    Handed to collaborators after every command; never observed
    mid-recompute.
    """
    _values: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, '_values', MappingProxyType(copy.deepcopy(dict(self._values))))

    @property
    def values(self) -> Mapping[str, Any]:
        return self._values

    def get(self, field_id: str, default: Any = None) -> Any:
        return self._values.get(field_id, default)

    def __getitem__(self, field_id: str) -> Any:
        return self._values[field_id]

    def __contains__(self, field_id: str) -> bool:
        return field_id in self._values

    def __len__(self) -> int:
        return len(self._values)

    def to_json(self) -> Dict[str, Any]:
        """
        Serialize to JSON-safe dict (deep copy).

        Returns:
            dict: Deep copy of field values
        """
        return copy.deepcopy(dict(self._values))

    @staticmethod
    def from_json(data: dict) -> "FormSnapshot":
        return FormSnapshot(_values=data)


EMPTY_SNAPSHOT = FormSnapshot(_values={})


# Command types

@dataclass(frozen=True)
class LoadSchema:
    """
    Parse and install a schema. Valid in every state.

    raw: JSON text/bytes or already-decoded list of group records.
    """
    raw: Any


@dataclass(frozen=True)
class SelectGroup:
    """Open group `index` from the group list."""
    index: int


@dataclass(frozen=True)
class SetField:
    """Write a raw answer; derived fields are recomputed."""
    field_id: str
    value: Any


@dataclass(frozen=True)
class Next:
    """Validate the active group and advance on success."""
    pass


@dataclass(frozen=True)
class Previous:
    """Go to the previous group without validation."""
    pass


@dataclass(frozen=True)
class Back:
    """Return to the group list."""
    pass


# Command union type for type hints
Command = LoadSchema | SelectGroup | SetField | Next | Previous | Back
