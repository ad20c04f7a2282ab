"""
Pydantic schemas for data validation and serialization.
Provides validation models for stimuli, progress updates and participant submissions.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, conint, constr, field_validator, model_validator

from src.logic.stimulus import StimulusType, UploadStatus


# Base schemas
class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        validate_assignment=True,
        populate_by_name=True,
    )


# Stimulus schemas
class StimulusCreate(BaseSchema):
    """Stimulus creation schema."""

    type: StimulusType
    content: str = ""
    metadata: dict[str, Any] | None = None


class StimulusUpdate(BaseSchema):
    """Partial stimulus update schema."""

    type: StimulusType | None = None
    content: str | None = None
    metadata: dict[str, Any] | None = None
    upload_status: UploadStatus | None = Field(default=None, alias="uploadStatus")


# Session schemas
class SessionProgressUpdate(BaseSchema):
    """Generic progress update sent after every step."""

    study_id: str | None = Field(default=None, alias="studyId")
    current_step: constr(min_length=1) = Field(alias="currentStep")
    completed_step: str | None = Field(default=None, alias="completedStep")
    step_data: Any = Field(default=None, alias="stepData")


class PlacementSchema(BaseSchema):
    """One stimulus placed into a grid column."""

    stimulus_id: constr(min_length=1) = Field(alias="stimulusId")
    column_value: int = Field(alias="columnValue")


class QSortSubmission(BaseSchema):
    """Q-sort step submission."""

    study_id: constr(min_length=1) = Field(alias="studyId")
    placements: list[PlacementSchema]
    duration_seconds: conint(ge=0) | None = Field(default=None, alias="durationSeconds")


class PreSortSubmission(BaseSchema):
    """Pre-sorting step submission: stimuli split into agree/neutral/disagree piles."""

    study_id: constr(min_length=1) = Field(alias="studyId")
    agree: list[str] = Field(default_factory=list)
    neutral: list[str] = Field(default_factory=list)
    disagree: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_piles_disjoint(self):
        """A stimulus may sit in at most one pile."""
        seen: set[str] = set()
        for pile in (self.agree, self.neutral, self.disagree):
            duplicates = seen.intersection(pile)
            if duplicates or len(set(pile)) != len(pile):
                raise ValueError("Each stimulus can only be in one pre-sort pile")
            seen.update(pile)
        return self


class CommentarySubmission(BaseSchema):
    """Commentary step submission: free-text comments keyed by stimulus id."""

    study_id: constr(min_length=1) = Field(alias="studyId")
    comments: dict[str, str] = Field(default_factory=dict)

    @field_validator("comments")
    @classmethod
    def validate_comment_length(cls, v):
        """Keep individual comments within a sane size."""
        for stimulus_id, comment in v.items():
            if len(comment) > 5000:
                raise ValueError(f"Comment for stimulus {stimulus_id} exceeds 5000 characters")
        return v
