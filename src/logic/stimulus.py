"""
Stimulus entity for QSTUDY studies.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import uuid4


class StimulusType(str, Enum):
    """Kind of content a stimulus carries."""

    TEXT = "TEXT"
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    DOCUMENT = "DOCUMENT"


class UploadStatus(str, Enum):
    """Upload lifecycle of a stimulus."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class Stimulus:
    """A single item participants sort onto the grid."""

    id: str
    type: StimulusType
    content: str = ""
    metadata: dict[str, Any] | None = None
    upload_status: UploadStatus = UploadStatus.PENDING

    def __post_init__(self):
        self.type = StimulusType(self.type)
        self.upload_status = UploadStatus(self.upload_status)

    @property
    def is_complete(self) -> bool:
        return self.upload_status == UploadStatus.COMPLETE

    @classmethod
    def create(cls, type: StimulusType | str, content: str, metadata: dict[str, Any] | None = None) -> "Stimulus":
        # text needs no upload step
        status = UploadStatus.COMPLETE if StimulusType(type) == StimulusType.TEXT else UploadStatus.PENDING
        return cls(id=str(uuid4()), type=type, content=content, metadata=metadata, upload_status=status)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "content": self.content,
            "uploadStatus": self.upload_status.value,
        }
        if self.metadata is not None:
            data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Stimulus":
        return cls(
            id=str(data["id"]),
            type=data["type"],
            content=data.get("content", ""),
            metadata=data.get("metadata"),
            upload_status=data.get("uploadStatus", data.get("upload_status", UploadStatus.PENDING)),
        )
