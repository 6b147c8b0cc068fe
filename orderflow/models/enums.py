import enum


class OrderStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    INTAKE = "INTAKE"
    PREPARING = "PREPARING"
    PREPARATION = "PREPARATION"
    PROCESSING = "PROCESSING"
    SORTING = "SORTING"
    WASHING = "WASHING"
    DRYING = "DRYING"
    FINISHING = "FINISHING"
    ASSEMBLY = "ASSEMBLY"
    QA = "QA"
    PACKING = "PACKING"
    READY = "READY"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class OrderSubtype(str, enum.Enum):
    SPLIT = "SPLIT"
    SPLIT_CHILD = "SPLIT_CHILD"


class OrderPriority(str, enum.Enum):
    NORMAL = "NORMAL"
    URGENT = "URGENT"
    EXPRESS = "EXPRESS"


class ItemStatus(str, enum.Enum):
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    PROCESSING = "PROCESSING"
    READY = "READY"
    CLOSED = "CLOSED"


class PieceStatus(str, enum.Enum):
    INTAKE = "INTAKE"
    PROCESSING = "PROCESSING"
    QA = "QA"
    READY = "READY"


class ScanState(str, enum.Enum):
    EXPECTED = "EXPECTED"
    SCANNED = "SCANNED"
    MISSING = "MISSING"
    WRONG = "WRONG"


class HistoryAction(str, enum.Enum):
    ORDER_CREATED = "ORDER_CREATED"
    STATUS_CHANGE = "STATUS_CHANGE"
    ITEM_STEP = "ITEM_STEP"
    ITEM_COMPLETE = "ITEM_COMPLETE"
    ISSUE_CREATED = "ISSUE_CREATED"
    ISSUE_SOLVED = "ISSUE_SOLVED"
    SPLIT = "SPLIT"
    PIECE_DELETED = "PIECE_DELETED"


class IssuePriority(str, enum.Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class AssemblyTaskStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    QA_PENDING = "QA_PENDING"
    COMPLETED = "COMPLETED"


class QaStatus(str, enum.Enum):
    PENDING = "PENDING"
    PASSED = "PASSED"
    FAILED = "FAILED"


class PriceListType(str, enum.Enum):
    STANDARD = "STANDARD"
    EXPRESS = "EXPRESS"
    B2B = "B2B"
    VIP = "VIP"


class StockTransactionType(str, enum.Enum):
    SALE_DEDUCTION = "SALE_DEDUCTION"
    ADJUSTMENT = "ADJUSTMENT"


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
