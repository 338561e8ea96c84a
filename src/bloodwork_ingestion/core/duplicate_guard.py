# ============================================================================
# src/bloodwork_ingestion/core/duplicate_guard.py
# ============================================================================
"""
Duplicate Guard

Decides, per (content hash, owner), whether a document may be ingested:

    Unseen     no marker                      -> proceed
    Completed  marker and >= 1 stored result  -> DuplicateDocumentError
    Orphaned   marker but no stored results   -> delete marker, proceed

The marker is written by mark_processed() only after the results are
persisted, so an attempt that dies mid-pipeline leaves Orphaned behind,
never Completed.

Check-then-act is serialized in-process with one asyncio.Lock per
(hash, owner); callers hold lock() from check() to mark_processed().
Concurrent workers in separate processes are not coordinated.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from .context.enums import GuardState
from .context.lab_result import ProcessedFileMarker
from .result_store import ResultStore
from ..utils.exceptions import DuplicateDocumentError

logger = logging.getLogger(__name__)


class DuplicateGuard:
    """
    Idempotency gate in front of the ingestion pipeline.

    Args:
        store: Result store holding lab results and processed-file markers
    """

    def __init__(self, store: ResultStore):
        self.store = store
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._waiters: Dict[Tuple[str, str], int] = {}

    @asynccontextmanager
    async def lock(self, source_file_hash: str, owner_id: str):
        """Serialize ingestion of one file for one owner."""
        key = (source_file_hash, owner_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    async def state(self, source_file_hash: str, owner_id: str) -> GuardState:
        marker = await self.store.get_marker(source_file_hash, owner_id)
        if marker is None:
            return GuardState.UNSEEN
        if await self.store.count_results(source_file_hash, owner_id) > 0:
            return GuardState.COMPLETED
        return GuardState.ORPHANED

    async def check(self, source_file_hash: str, owner_id: str) -> GuardState:
        """
        Gate one ingestion attempt.

        Returns the state found (UNSEEN or ORPHANED); an orphaned marker has
        already been deleted when this returns.

        Raises:
            DuplicateDocumentError: the file already has stored results
        """
        state = await self.state(source_file_hash, owner_id)

        if state is GuardState.COMPLETED:
            logger.info(f"Duplicate upload refused: {source_file_hash[:12]} for owner {owner_id}")
            raise DuplicateDocumentError(source_file_hash, owner_id)

        if state is GuardState.ORPHANED:
            logger.warning(
                f"Orphaned processed-file marker for {source_file_hash[:12]} "
                f"(owner {owner_id}) has no results, removing it and reprocessing"
            )
            await self.store.delete_marker(source_file_hash, owner_id)

        return state

    async def mark_processed(
        self,
        source_file_hash: str,
        owner_id: str,
        file_name: str,
        processed_at: Optional[datetime] = None,
    ) -> ProcessedFileMarker:
        """Record that the pipeline finished. Call only after results are persisted."""
        marker = ProcessedFileMarker(
            source_file_hash=source_file_hash,
            owner_id=owner_id,
            file_name=file_name,
            processed_at=processed_at or datetime.now(timezone.utc),
        )
        await self.store.put_marker(marker)
        logger.debug(f"Marked {source_file_hash[:12]} processed for owner {owner_id}")
        return marker
