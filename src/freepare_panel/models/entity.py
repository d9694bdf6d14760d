"""Entity model and the exam → subject → topic → paper hierarchy rules."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EntityType(str, Enum):
    """Kind of node in the content tree."""

    EXAM = "exam"
    SUBJECT = "subject"
    TOPIC = "topic"
    PAPER = "paper"


# Parent type -> child types creatable beneath it. None is the forest root.
CHILD_TYPES: dict[EntityType | None, tuple[EntityType, ...]] = {
    None: (EntityType.EXAM,),
    EntityType.EXAM: (EntityType.SUBJECT, EntityType.TOPIC, EntityType.PAPER),
    EntityType.SUBJECT: (EntityType.TOPIC, EntityType.PAPER),
    EntityType.TOPIC: (EntityType.PAPER,),
    EntityType.PAPER: (),
}


def allowed_child_types(parent_type: EntityType | str | None) -> tuple[EntityType, ...]:
    """Child types that may be added under ``parent_type`` (None = root level)."""
    if parent_type is not None:
        parent_type = EntityType(parent_type)
    return CHILD_TYPES[parent_type]


def can_contain(parent_type: EntityType | str | None, child_type: EntityType | str) -> bool:
    """Return True when a ``child_type`` node may live under ``parent_type``."""
    return EntityType(child_type) in allowed_child_types(parent_type)


class Entity(BaseModel):
    """A node in the content tree, as stored by the backend.

    Instances are frozen; tree operations build new values instead of
    mutating nodes that callers may still hold.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id", description="Identifier assigned by the backend")
    name: str = Field(description="Display label")
    type: EntityType
    description: str | None = Field(None, description="Topic description")
    testName: str | None = Field(None, description="Test name (papers only)")
    videoLink: str | None = Field(None, description="Video link (papers only)")
    parentId: str | None = Field(None, description="Parent id reported by the backend")
    position: int = Field(0, description="Order among siblings")
    children: tuple["Entity", ...] = Field(default_factory=tuple)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def to_payload(self) -> dict[str, Any]:
        """Serialise with backend field names (``_id``), dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


Forest = tuple[Entity, ...]
