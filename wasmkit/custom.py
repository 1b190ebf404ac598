"""Custom sections of a wasm module."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Iterator

from .arena import Arena, Id


class CustomSection(abc.ABC):
    """A custom section: a name plus a payload produced at emit time.

    Subclasses provide a `name` attribute and implement `data`.
    """

    name: str

    @abc.abstractmethod
    def data(self, indices: Any) -> bytes:
        """The section payload, without the section header, name or size."""

    def add_gc_roots(self, roots: Any) -> None:
        """Add the core wasm items this section references to `roots`; does nothing by default."""

    def apply_code_transform(self, transform: Any) -> None:
        """Update code offsets after the code section was rewritten; does nothing by default."""


@dataclass
class RawCustomSection(CustomSection):
    """A custom section kept as unparsed bytes."""

    name: str
    payload: bytes = b""

    def data(self, indices: Any) -> bytes:
        """The raw payload."""
        return bytes(self.payload)


@dataclass(frozen=True)
class CustomSectionId:
    """Identifies a custom section; `section_type` None means any type."""

    id: Id
    section_type: type | None = field(default=None, compare=False)

    def _accepts(self, section: CustomSection) -> bool:
        return self.section_type is None or isinstance(section, self.section_type)


class ModuleCustomSections:
    """The custom sections of a module, in insertion order."""

    def __init__(self) -> None:
        self._arena: Arena[CustomSection] = Arena()

    def add(self, section: CustomSection) -> CustomSectionId:
        """Add a section and return an id typed with its class."""
        return CustomSectionId(self._arena.alloc(section), type(section))

    def _lookup(self, id: CustomSectionId) -> CustomSection | None:
        try:
            return self._arena.get(id.id)
        except KeyError:
            return None

    def delete(self, id: CustomSectionId) -> CustomSection | None:
        """Remove a section and return it.

        Returns None if it was already gone, or if it is not of the id's type
        (it is removed all the same).
        """
        section = self._lookup(id)
        if section is None:
            return None
        self._arena.delete(id.id)
        return section if id._accepts(section) else None

    def remove_raw(self, name: str) -> RawCustomSection | None:
        """Take out the first raw section named `name`, if any."""
        for item_id, section in self._arena.items():
            if isinstance(section, RawCustomSection) and section.name == name:
                self._arena.delete(item_id)
                return section
        return None

    def get(self, id: CustomSectionId) -> CustomSection | None:
        """The section for `id`, or None if it is gone or not of the id's type."""
        section = self._lookup(id)
        if section is None or not id._accepts(section):
            return None
        return section

    def items(self) -> Iterator[tuple[CustomSectionId, CustomSection]]:
        """Live sections with untyped ids."""
        for item_id, section in self._arena.items():
            yield CustomSectionId(item_id), section

    def delete_typed(self, section_type: type) -> CustomSection | None:
        """Remove and return the first section of `section_type`, if any."""
        for section_id, section in self.items():
            if isinstance(section, section_type):
                return self.delete(section_id)
        return None

    def get_typed(self, section_type: type) -> CustomSection | None:
        """The first section of `section_type`, if any."""
        return next(
            (section for _, section in self.items() if isinstance(section, section_type)),
            None,
        )

    def __len__(self) -> int:
        return len(self._arena)