"""Typed job payload validated at the queue boundary."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from vpipe.core.exceptions import JobValidationError


class PipelineJob(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    video_id: str = Field(validation_alias=AliasChoices("video_id", "videoId"), serialization_alias="videoId")
    source_key: str = Field(
        validation_alias=AliasChoices("source_key", "sourceKey", "r2Key"),
        serialization_alias="r2Key",
    )
    project_id: str = Field(
        validation_alias=AliasChoices("project_id", "projectId"),
        serialization_alias="projectId",
    )

    @field_validator("video_id", "source_key", "project_id", mode="before")
    @classmethod
    def _non_empty(cls, v: Any) -> str:
        # Numeric ids from older producers are accepted as strings
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not v.strip():
            raise ValueError("must be a non-empty string")
        return v.strip()

    @classmethod
    def from_payload(cls, payload: Any) -> PipelineJob:
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise JobValidationError(f"Invalid pipeline job: {e}") from e

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)
