"""Piece tracking service: per-piece state and the item's derived quantity_ready."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.exceptions import AppException, ValidationException
from orderflow.models.enums import HistoryAction, PieceStatus, ScanState
from orderflow.models.order_item import OrderItem
from orderflow.models.order_item_piece import OrderItemPiece
from orderflow.modules.order.history import OrderHistoryService
from orderflow.modules.piece.schemas import (
    PieceAttributes,
    PieceBatchUpdateEntry,
    PieceOverride,
    PieceUpdate,
)
from orderflow.modules.tenancy.guard import ensure_tenant, get_scoped, scoped_select
from orderflow.schemas.responses import BatchError, BatchResult

logger = logging.getLogger(__name__)

# Patching any of these changes which pieces count as ready
_READINESS_FIELDS = frozenset({"status", "is_rejected"})

_NON_NULLABLE_FIELDS = frozenset(
    {"scan_state", "status", "is_rejected", "has_stain", "has_damage", "price_per_unit"}
)


class PieceService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_piece(self, tenant_id: uuid.UUID, piece_id: uuid.UUID) -> OrderItemPiece:
        return await get_scoped(self.db, OrderItemPiece, tenant_id, piece_id, label="Piece")

    async def get_pieces_by_item(
        self, tenant_id: uuid.UUID, item_id: uuid.UUID
    ) -> list[OrderItemPiece]:
        result = await self.db.execute(
            scoped_select(OrderItemPiece, tenant_id)
            .where(OrderItemPiece.order_item_id == item_id)
            .order_by(OrderItemPiece.piece_seq.asc(), OrderItemPiece.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_pieces_by_order(
        self, tenant_id: uuid.UUID, order_id: uuid.UUID
    ) -> list[OrderItemPiece]:
        result = await self.db.execute(
            scoped_select(OrderItemPiece, tenant_id)
            .where(OrderItemPiece.order_id == order_id)
            .order_by(OrderItemPiece.order_item_id, OrderItemPiece.piece_seq.asc())
        )
        return list(result.scalars().all())

    async def _count_live_pieces(self, tenant_id: uuid.UUID, item_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(OrderItemPiece)
            .where(
                OrderItemPiece.tenant_id == tenant_id,
                OrderItemPiece.order_item_id == item_id,
                OrderItemPiece.deleted_at.is_(None),
            )
        )
        return result.scalar_one()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_pieces_for_item(
        self,
        tenant_id: uuid.UUID,
        item: OrderItem,
        quantity: int,
        base: PieceAttributes | None = None,
        overrides: list[PieceOverride] | None = None,
        status: PieceStatus = PieceStatus.PROCESSING,
    ) -> list[OrderItemPiece]:
        """Create ``quantity`` sequenced pieces for an item.

        Sequence numbers continue after the item's live pieces. Attributes
        come from ``base`` (or the item itself), then the override whose
        ``piece_seq`` matches, if any.
        """
        ensure_tenant(item, tenant_id)
        if quantity < 1 or quantity > settings.max_piece_quantity:
            raise ValidationException(
                f"Piece quantity must be between 1 and {settings.max_piece_quantity}"
            )

        if base is None:
            base = PieceAttributes(
                color=item.color,
                brand=item.brand,
                has_stain=item.has_stain,
                has_damage=item.has_damage,
            )
        by_seq = {override.piece_seq: override for override in overrides or []}
        start = await self._count_live_pieces(tenant_id, item.id)

        pieces = []
        for offset in range(quantity):
            seq = start + offset + 1
            piece = OrderItemPiece(
                tenant_id=tenant_id,
                order_id=item.order_id,
                order_item_id=item.id,
                piece_seq=seq,
                service_category_code=item.service_category_code,
                product_id=item.product_id,
                scan_state=ScanState.EXPECTED,
                status=status,
                price_per_unit=item.price_per_unit,
                total_price=item.price_per_unit,
                is_rejected=False,
                color=base.color,
                brand=base.brand,
                has_stain=base.has_stain,
                has_damage=base.has_damage,
                notes=base.notes,
                rack_location=base.rack_location,
                metadata_extra=dict(base.metadata),
            )
            override = by_seq.get(seq)
            if override is not None:
                _apply_override(piece, override)
            self.db.add(piece)
            pieces.append(piece)
        await self.db.flush()

        await self.sync_item_quantity_ready(tenant_id, item.id)
        return pieces

    async def add_piece(
        self,
        tenant_id: uuid.UUID,
        item_id: uuid.UUID,
        attributes: PieceAttributes | None = None,
    ) -> OrderItemPiece:
        """Append one piece to an item; the item's quantity grows with it."""
        item = await get_scoped(self.db, OrderItem, tenant_id, item_id, label="Order item")
        (piece,) = await self.create_pieces_for_item(tenant_id, item, 1, base=attributes)
        item.quantity += 1
        item.total_price = item.price_per_unit * item.quantity
        await self.db.flush()
        return piece

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def update_piece(
        self,
        tenant_id: uuid.UUID,
        piece_id: uuid.UUID,
        patch: PieceUpdate,
        actor_id: uuid.UUID | None = None,
    ) -> OrderItemPiece:
        """Apply the fields set on ``patch``; readiness changes re-sync the item."""
        piece = await self.get_piece(tenant_id, piece_id)
        changes = patch.model_dump(exclude_unset=True)

        for field in _NON_NULLABLE_FIELDS & changes.keys():
            if changes[field] is None:
                raise ValidationException(f"{field} cannot be null")

        metadata = changes.pop("metadata", None)
        if metadata:
            piece.metadata_extra = {**(piece.metadata_extra or {}), **metadata}
        if "last_step" in changes:
            piece.last_step_at = datetime.now(UTC)
            piece.last_step_by = actor_id
        if "price_per_unit" in changes:
            piece.total_price = changes["price_per_unit"]

        for field, value in changes.items():
            setattr(piece, field, value)
        await self.db.flush()

        if _READINESS_FIELDS & changes.keys():
            await self.sync_item_quantity_ready(tenant_id, piece.order_item_id)
        return piece

    async def batch_update_pieces(
        self,
        tenant_id: uuid.UUID,
        entries: list[PieceBatchUpdateEntry],
        actor_id: uuid.UUID | None = None,
    ) -> BatchResult:
        """Apply updates one at a time, collecting per-piece failures."""
        result = BatchResult()
        for entry in entries:
            try:
                await self.update_piece(tenant_id, entry.piece_id, entry.updates, actor_id)
            except AppException as exc:
                logger.warning("Batch update of piece %s failed: %s", entry.piece_id, exc.message)
                result.errors.append(
                    BatchError(entity_id=entry.piece_id, error=exc.message, code=exc.code)
                )
                continue
            result.updated_count += 1
        return result

    async def mark_piece_ready(
        self, tenant_id: uuid.UUID, piece_id: uuid.UUID, actor_id: uuid.UUID | None = None
    ) -> OrderItemPiece:
        return await self.update_piece(
            tenant_id, piece_id, PieceUpdate(status=PieceStatus.READY), actor_id
        )

    async def reject_piece(
        self,
        tenant_id: uuid.UUID,
        piece_id: uuid.UUID,
        issue_id: uuid.UUID | None = None,
        notes: str | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> OrderItemPiece:
        fields: dict = {"is_rejected": True}
        if issue_id is not None:
            fields["issue_id"] = issue_id
        if notes is not None:
            fields["notes"] = notes
        return await self.update_piece(tenant_id, piece_id, PieceUpdate(**fields), actor_id)

    async def delete_piece(
        self, tenant_id: uuid.UUID, piece_id: uuid.UUID, actor_id: uuid.UUID | None = None
    ) -> None:
        """Tombstone a piece, close the gap in the item's sequence and re-sync."""
        piece = await self.get_piece(tenant_id, piece_id)
        piece.deleted_at = datetime.now(UTC)
        piece.deleted_by = actor_id
        await self.db.flush()

        item = await get_scoped(self.db, OrderItem, tenant_id, piece.order_item_id, label="Order item")
        remaining = await self.resequence_item_pieces(tenant_id, item.id)
        item.quantity = len(remaining)
        item.total_price = item.price_per_unit * item.quantity
        await self.sync_item_quantity_ready(tenant_id, item.id)

        await OrderHistoryService(self.db).log_action(
            tenant_id,
            piece.order_id,
            HistoryAction.PIECE_DELETED,
            actor_id,
            payload={"piece_id": str(piece.id), "order_item_id": str(item.id), "piece_seq": piece.piece_seq},
        )
        logger.info("Deleted piece %s of item %s", piece.id, item.id)

    async def reassign_pieces(
        self,
        tenant_id: uuid.UUID,
        pieces: list[OrderItemPiece],
        source_item: OrderItem,
        target_item: OrderItem,
    ) -> None:
        """Move pieces to another item (possibly of another order) keeping both sides dense and synced."""
        ensure_tenant(source_item, tenant_id)
        ensure_tenant(target_item, tenant_id)
        for piece in pieces:
            ensure_tenant(piece, tenant_id)
            piece.order_id = target_item.order_id
            piece.order_item_id = target_item.id
            # Park after the target's live pieces until resequencing
            piece.piece_seq += settings.max_piece_quantity
        await self.db.flush()

        for item in (source_item, target_item):
            await self.resequence_item_pieces(tenant_id, item.id)
            await self.sync_item_quantity_ready(tenant_id, item.id)

    async def resequence_item_pieces(
        self, tenant_id: uuid.UUID, item_id: uuid.UUID
    ) -> list[OrderItemPiece]:
        """Renumber the item's live pieces to 1..n, keeping their relative order."""
        pieces = await self.get_pieces_by_item(tenant_id, item_id)
        for seq, piece in enumerate(pieces, start=1):
            if piece.piece_seq != seq:
                piece.piece_seq = seq
        await self.db.flush()
        return pieces

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    async def sync_item_quantity_ready(self, tenant_id: uuid.UUID, item_id: uuid.UUID) -> int:
        """Recompute ``quantity_ready`` from scratch: live, ready, non-rejected pieces."""
        result = await self.db.execute(
            select(func.count())
            .select_from(OrderItemPiece)
            .where(
                OrderItemPiece.tenant_id == tenant_id,
                OrderItemPiece.order_item_id == item_id,
                OrderItemPiece.deleted_at.is_(None),
                OrderItemPiece.status == PieceStatus.READY,
                OrderItemPiece.is_rejected.is_(False),
            )
        )
        ready_count = result.scalar_one()

        item = await get_scoped(self.db, OrderItem, tenant_id, item_id, label="Order item")
        item.quantity_ready = ready_count
        await self.db.flush()
        return ready_count

    async def sync_order_items_quantity_ready(
        self, tenant_id: uuid.UUID, order_id: uuid.UUID
    ) -> BatchResult:
        """Re-sync every live item of an order (backfill / repair)."""
        result = await self.db.execute(
            scoped_select(OrderItem, tenant_id).where(OrderItem.order_id == order_id)
        )
        outcome = BatchResult()
        for item in result.scalars().all():
            try:
                await self.sync_item_quantity_ready(tenant_id, item.id)
            except AppException as exc:
                outcome.errors.append(BatchError(entity_id=item.id, error=exc.message, code=exc.code))
                continue
            outcome.updated_count += 1
        return outcome


def _apply_override(piece: OrderItemPiece, override: PieceOverride) -> None:
    values = override.model_dump(exclude_unset=True, exclude={"piece_seq"})
    metadata = values.pop("metadata", None)
    if metadata:
        piece.metadata_extra = {**piece.metadata_extra, **metadata}
    for field, value in values.items():
        if value is not None:
            setattr(piece, field, value)
