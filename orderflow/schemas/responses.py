"""Shared response schemas: error envelope and batch outcomes."""

import uuid

from pydantic import BaseModel, Field, computed_field

from orderflow.exceptions import PartialBatchFailureException


class ErrorBody(BaseModel):
    """Structured error body returned inside every error response."""

    code: str
    message: str
    details: list[dict] = []
    blockers: list[str] | None = None
    request_id: str = Field(alias="requestId")

    model_config = {"populate_by_name": True}


class ErrorResponse(BaseModel):
    """Top-level error envelope."""

    error: ErrorBody


class BatchError(BaseModel):
    entity_id: uuid.UUID
    error: str
    code: str | None = None


class BatchResult(BaseModel):
    """Itemized outcome of a sequential batch; one member's failure never aborts the rest."""

    updated_count: int = 0
    errors: list[BatchError] = Field(default_factory=list)

    @computed_field
    @property
    def success(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Escalate collected member failures as PartialBatchFailureException."""
        if self.errors:
            raise PartialBatchFailureException(
                f"{len(self.errors)} of {self.updated_count + len(self.errors)} updates failed",
                details=[e.model_dump(mode="json") for e in self.errors],
            )
