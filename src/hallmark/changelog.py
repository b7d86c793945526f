"""Keep a Changelog entry types produced by the generation backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ChangelogCategory(Enum):
    """Changelog sections, in Keep a Changelog order."""

    ADDED = "Added"
    CHANGED = "Changed"
    DEPRECATED = "Deprecated"
    REMOVED = "Removed"
    FIXED = "Fixed"
    SECURITY = "Security"

    @classmethod
    def parse(cls, value: str) -> ChangelogCategory:
        """Parse a category name case-insensitively."""
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        raise ValueError(f"Unknown category: {value}")

    @property
    def order(self) -> int:
        return list(ChangelogCategory).index(self)


@dataclass(frozen=True)
class ChangelogEntry:
    """A single generated changelog line."""

    category: ChangelogCategory
    description: str

    def to_dict(self) -> dict:
        return {"category": self.category.value, "description": self.description}


@dataclass(frozen=True)
class ChangelogOutput:
    """Structured changelog document returned by a backend."""

    entries: tuple[ChangelogEntry, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: object) -> ChangelogOutput:
        """Build from decoded JSON. Raises ValueError on schema mismatch."""
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        raw_entries = data.get("entries")
        if not isinstance(raw_entries, list):
            raise ValueError("missing required key 'entries' (array)")

        entries: list[ChangelogEntry] = []
        for index, item in enumerate(raw_entries):
            if not isinstance(item, dict):
                raise ValueError(f"entries[{index}] is not an object")
            if "category" not in item or "description" not in item:
                raise ValueError(
                    f"entries[{index}] needs 'category' and 'description'"
                )
            description = item["description"]
            if not isinstance(description, str):
                raise ValueError(f"entries[{index}].description is not a string")
            entries.append(ChangelogEntry(
                category=ChangelogCategory.parse(item["category"]),
                description=description,
            ))
        return cls(entries=tuple(entries))

    def to_dict(self) -> dict:
        return {"entries": [entry.to_dict() for entry in self.entries]}
