"""Tenancy module constants."""

CACHE_PREFIX = "tenant"
CACHE_TTL_DEFAULT = 300  # seconds
CACHE_SCAN_BATCH = 100
