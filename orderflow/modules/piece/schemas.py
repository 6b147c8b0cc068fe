"""Pydantic v2 schemas for piece tracking."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from orderflow.models.enums import PieceStatus, ScanState
from orderflow.modules.piece.constants import BARCODE_MAX_LENGTH, BARCODE_PATTERN, MAX_PIECE_PRICE

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class PieceAttributes(BaseModel):
    """Attributes shared by every piece of an item unless overridden per piece."""

    color: str | None = Field(None, max_length=50)
    brand: str | None = Field(None, max_length=100)
    has_stain: bool = False
    has_damage: bool = False
    notes: str | None = None
    rack_location: str | None = Field(None, max_length=50)
    metadata: dict = Field(default_factory=dict)


class PieceOverride(BaseModel):
    """Per-piece attributes, matched to a piece by ``piece_seq``."""

    piece_seq: int = Field(..., ge=1)
    color: str | None = Field(None, max_length=50)
    brand: str | None = Field(None, max_length=100)
    has_stain: bool | None = None
    has_damage: bool | None = None
    notes: str | None = None
    rack_location: str | None = Field(None, max_length=50)
    barcode: str | None = Field(None, max_length=BARCODE_MAX_LENGTH, pattern=BARCODE_PATTERN)
    metadata: dict | None = None


class PieceUpdate(BaseModel):
    """Partial piece patch; only fields explicitly set are applied."""

    scan_state: ScanState | None = None
    barcode: str | None = Field(None, max_length=BARCODE_MAX_LENGTH, pattern=BARCODE_PATTERN)
    status: PieceStatus | None = None
    stage: str | None = Field(None, max_length=50)
    is_rejected: bool | None = None
    issue_id: uuid.UUID | None = None
    rack_location: str | None = Field(None, max_length=50)
    last_step: str | None = Field(None, max_length=50)
    color: str | None = Field(None, max_length=50)
    brand: str | None = Field(None, max_length=100)
    has_stain: bool | None = None
    has_damage: bool | None = None
    notes: str | None = None
    price_per_unit: Decimal | None = Field(None, ge=0, le=MAX_PIECE_PRICE)
    metadata: dict | None = None


class PieceBatchUpdateEntry(BaseModel):
    piece_id: uuid.UUID
    updates: PieceUpdate


class PieceBatchUpdateRequest(BaseModel):
    updates: list[PieceBatchUpdateEntry] = Field(..., min_length=1)


class PieceRejectRequest(BaseModel):
    issue_id: uuid.UUID | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PieceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    order_item_id: uuid.UUID
    piece_seq: int
    scan_state: ScanState
    barcode: str | None
    status: PieceStatus
    is_rejected: bool
    issue_id: uuid.UUID | None
    rack_location: str | None
    color: str | None
    brand: str | None
    has_stain: bool
    has_damage: bool
    notes: str | None
    price_per_unit: Decimal
    total_price: Decimal
    last_step: str | None
    last_step_at: datetime | None

