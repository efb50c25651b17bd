"""
Per-subtree write locks.

On PostgreSQL a transaction-scoped advisory lock serializes writers of the
same structure tree. Other dialects run without it (SQLite serializes
writers anyway).
"""
import hashlib
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def subtree_lock_key(path: str) -> int:
    """Stable signed 64-bit key for a path (the range pg_advisory locks take)."""
    digest = hashlib.sha256(path.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


async def lock_subtree(db: AsyncSession, *paths: str) -> None:
    """
    Hold the write lock covering every path in ``paths`` until the current
    transaction ends.

    Locks are keyed by the structure root of each path (its first segment),
    so two writers touching overlapping subtrees always contend on the same
    key. Keys are taken in sorted order to avoid deadlocks between a
    cross-structure move and a writer of either structure.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    roots = sorted({path.split("/", 1)[0] for path in paths if path})
    for root in roots:
        await db.execute(select(func.pg_advisory_xact_lock(subtree_lock_key(root))))
        logger.debug(f"Acquired subtree lock for {root}")
