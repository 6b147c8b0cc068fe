"""Piece tracking limits."""

from decimal import Decimal

BARCODE_PATTERN = r"^[A-Za-z0-9\-_]+$"
BARCODE_MAX_LENGTH = 100
MAX_PIECE_PRICE = Decimal("1000000")
