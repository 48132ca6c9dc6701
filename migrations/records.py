from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RawRecord:
    """One source document: its native identifier and untyped field map."""

    source_id: str | None
    fields: Any


@dataclass(frozen=True)
class TransformedRecord:
    source_id: str
    columns: dict[str, Any]


@dataclass(frozen=True)
class TransformDrop:
    source_id: str | None
    reason: str


@dataclass
class TransformOutcome:
    records: list[TransformedRecord] = field(default_factory=list)
    dropped: list[TransformDrop] = field(default_factory=list)
