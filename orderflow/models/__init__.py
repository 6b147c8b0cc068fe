# Import all models so SQLAlchemy metadata is populated for create_all
from orderflow.models.assembly_task import AssemblyTask
from orderflow.models.catalog import PriceListItem, StockLevel, StockTransaction
from orderflow.models.enums import (
    AssemblyTaskStatus,
    EventStatus,
    HistoryAction,
    IssuePriority,
    ItemStatus,
    OrderPriority,
    OrderStatus,
    OrderSubtype,
    PieceStatus,
    PriceListType,
    QaStatus,
    ScanState,
    StockTransactionType,
)
from orderflow.models.event_outbox import EventOutbox
from orderflow.models.order import Order
from orderflow.models.order_history import OrderHistory
from orderflow.models.order_issue import OrderIssue
from orderflow.models.order_item import OrderItem
from orderflow.models.order_item_piece import OrderItemPiece
from orderflow.models.processing_step import ProcessingStep, ProcessingStepConfig
from orderflow.models.reference import OrderNumberSequence, ServiceCategory, TenantOrderSettings

__all__ = [
    "AssemblyTask",
    "AssemblyTaskStatus",
    "EventOutbox",
    "EventStatus",
    "HistoryAction",
    "IssuePriority",
    "ItemStatus",
    "Order",
    "OrderHistory",
    "OrderIssue",
    "OrderItem",
    "OrderItemPiece",
    "OrderNumberSequence",
    "OrderPriority",
    "OrderStatus",
    "OrderSubtype",
    "PieceStatus",
    "PriceListItem",
    "PriceListType",
    "ProcessingStep",
    "ProcessingStepConfig",
    "QaStatus",
    "ScanState",
    "ServiceCategory",
    "StockLevel",
    "StockTransaction",
    "StockTransactionType",
    "TenantOrderSettings",
]
