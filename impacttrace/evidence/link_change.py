"""Tagged option for one evidence link field in an update.

omit: leave existing link rows alone. clear: delete them all.
replace: delete them all, then insert the given ids.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class LinkType(str, Enum):
    """The evidence association tables reconciled by the link manager."""

    KPI = "kpi"
    CLAIM = "claim"
    LOCATION = "location"
    FILE = "file"


@dataclass(frozen=True)
class LinkChange:
    kind: Literal["omit", "clear", "replace"]
    ids: tuple[uuid.UUID, ...] = field(default=())

    @classmethod
    def omit(cls) -> LinkChange:
        return cls("omit")

    @classmethod
    def clear(cls) -> LinkChange:
        return cls("clear")

    @classmethod
    def replace(cls, ids: Iterable[uuid.UUID]) -> LinkChange:
        """Replace with ids (deduplicated, order kept); an empty list is a clear."""
        unique = tuple(dict.fromkeys(ids))
        if not unique:
            return cls.clear()
        return cls("replace", unique)

    @classmethod
    def from_optional(cls, ids: Iterable[uuid.UUID] | None) -> LinkChange:
        """None (field absent) means omit; a list, even empty, is authoritative."""
        if ids is None:
            return cls.omit()
        return cls.replace(ids)

    @property
    def is_omit(self) -> bool:
        return self.kind == "omit"
