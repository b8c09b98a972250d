"""
Named counters backing human readable identifiers (order numbers).

Each counter is one document in the "counter" collection, keyed by the
sequence name. Allocation is a single find-and-modify so concurrent callers
never receive the same value.
"""

import os

from pymongo import ReturnDocument

from logging_config import get_logger
from schemas import Counter

ORDER_NUMBER_PREFIX = os.getenv("ORDER_NUMBER_PREFIX", "ITS")
ORDER_NUMBER_WIDTH = int(os.getenv("ORDER_NUMBER_WIDTH", "9"))
ORDER_SEQUENCE_NAME = os.getenv("ORDER_SEQUENCE_NAME", "orderId")

log = get_logger(__name__)


def next_value(db, sequence_name: str) -> int:
    """Increment and return the counter, creating it at 1 when absent."""
    doc = db["counter"].find_one_and_update(
        {"_id": sequence_name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return Counter.model_validate(doc).seq


def format_sequence(value: int, prefix: str = ORDER_NUMBER_PREFIX, width: int = ORDER_NUMBER_WIDTH) -> str:
    return f"{prefix}{value:0{width}d}"


def next_order_number(db) -> str:
    value = next_value(db, ORDER_SEQUENCE_NAME)
    order_number = format_sequence(value)
    log.info(f"Allocated order number {order_number} (sequence {ORDER_SEQUENCE_NAME}={value})")
    return order_number
