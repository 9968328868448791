"""
options/models.py -- Domain dataclass for selectable option lists.

Options are reference data (industries, professions) that clients render as
pick lists. They change rarely and are read on every form load, which makes
them the main read-through cache consumer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class OptionKind(str, Enum):
    industry = "industry"
    profession = "profession"


@dataclass
class Option:
    """One entry of an option list.

    payload is free-form JSON (e.g. a nested category tree) stored as text.
    id is None before the record is written to the database.
    """

    kind: str  # "industry" | "profession"
    name: str
    payload: Any = field(default_factory=dict)
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
