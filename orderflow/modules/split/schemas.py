"""Pydantic v2 schemas for splitting orders."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, Field, computed_field, field_validator

from orderflow.schemas.responses import BatchError


class SplitByPiecesRequest(BaseModel):
    """Piece sequences to move, keyed by the parent item they belong to."""

    pieces: dict[uuid.UUID, list[int]] = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=1000)

    @field_validator("pieces")
    @classmethod
    def _non_empty_selection(cls, value: dict[uuid.UUID, list[int]]) -> dict[uuid.UUID, list[int]]:
        for item_id, seqs in value.items():
            if not seqs:
                raise ValueError(f"No piece sequences given for item {item_id}")
            if any(seq < 1 for seq in seqs):
                raise ValueError("Piece sequences start at 1")
        return value


class SplitItemsRequest(BaseModel):
    item_ids: list[uuid.UUID] = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=1000)


class SplitResult(BaseModel):
    parent_order_id: uuid.UUID
    child_order_id: uuid.UUID
    child_order_number: str
    moved_items: int = 0
    moved_pieces: int = 0
    moved_piece_ids: list[uuid.UUID] = Field(default_factory=list)
    errors: list[BatchError] = Field(default_factory=list)

    @computed_field
    @property
    def success(self) -> bool:
        return not self.errors
