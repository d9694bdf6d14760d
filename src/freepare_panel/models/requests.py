"""Request payloads sent to the backend, plus client/notification records."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .entity import Entity, EntityType


class APIConfiguration(BaseModel):
    """Connection settings for the backend client."""

    base_url: str = Field("https://freepare.onrender.com/api", description="Backend API root")
    timeout: float = Field(30.0, gt=0, description="Request timeout in seconds")
    read_max_retries: int = Field(10, ge=1, description="Attempts for read requests")


class EntityCreateRequest(BaseModel):
    """Body of ``POST /entities``."""

    name: str
    type: EntityType
    parentId: str | None = None
    description: str | None = None
    testName: str | None = None
    videoLink: str | None = None

    @model_validator(mode="after")
    def _drop_fields_for_other_types(self) -> "EntityCreateRequest":
        # description only means something on topics; test/video only on papers
        if self.type != EntityType.TOPIC:
            self.description = None
        if self.type != EntityType.PAPER:
            self.testName = None
            self.videoLink = None
        return self

    @classmethod
    def from_entity(cls, entity: Entity, parent_id: str | None) -> "EntityCreateRequest":
        """Build a create request that re-creates ``entity`` (children excluded)."""
        return cls(
            name=entity.name,
            type=entity.type,
            parentId=parent_id,
            description=entity.description,
            testName=entity.testName,
            videoLink=entity.videoLink,
        )

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json", exclude_none=True)
        # root-level creates send an explicit null parent
        payload["parentId"] = self.parentId
        return payload


class EntityUpdateRequest(BaseModel):
    """Body of ``PUT /entities/{id}``."""

    name: str


class PaperTestNameRequest(BaseModel):
    """Body of ``PUT /entities/{id}/renameTestName``."""

    testName: str


class ReorderRequest(BaseModel):
    """Body of ``POST /entities/reorder``: the whole forest with positions."""

    updatedData: tuple[Entity, ...]

    def to_payload(self) -> dict[str, Any]:
        return {"updatedData": [entity.to_payload() for entity in self.updatedData]}


class Severity(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A single human-readable status line for the user."""

    message: str
    severity: Severity = Severity.INFO

    @classmethod
    def build(cls, message: str, severity: Severity = Severity.INFO) -> "Notification":
        # backend messages often repeat an "Error: " prefix the UI already implies
        message = re.sub(r"error: ", "", message, count=1, flags=re.IGNORECASE)
        return cls(message=message, severity=severity)

    def as_dict(self) -> dict[str, str]:
        return {"message": self.message, "severity": self.severity.value}
