"""
New-item detection.

Compares a fetched channel listing with the ledger and returns the items
that still need to be acquired.
"""

import logging
from typing import Iterable, Protocol

from .listing import ItemDescriptor

logger = logging.getLogger(__name__)


class LedgerView(Protocol):
    def has(self, item_id: str) -> bool: ...


def diff(
    ledger: LedgerView,
    source_id: str,
    remote_listing: Iterable[ItemDescriptor],
    limit: int,
) -> list[ItemDescriptor]:
    """
    Select the items of a listing that are not in the ledger yet.

    The listing order is kept as given (channel feeds are newest first) and
    scanning stops once ``limit`` new items have been selected. An id that
    appears twice in the listing is only selected once. The ledger is only
    read.

    Args:
        ledger: Anything with ``has(item_id)``, normally a LedgerStore
        source_id: Source the listing belongs to (for logging)
        remote_listing: Items in upstream order
        limit: Maximum number of items to return

    Returns:
        list[ItemDescriptor]: New items, in listing order
    """
    if limit <= 0:
        return []

    selected: list[ItemDescriptor] = []
    seen: set[str] = set()
    scanned = 0

    for item in remote_listing:
        scanned += 1
        if item.item_id in seen or ledger.has(item.item_id):
            continue
        seen.add(item.item_id)
        selected.append(item)
        if len(selected) >= limit:
            break

    logger.info(f"{source_id}: {len(selected)} new items out of {scanned} scanned (limit {limit})")
    return selected
