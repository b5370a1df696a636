"""
Batch registry — every live batch and the poller that owns its timer.
"""
from __future__ import annotations

import hashlib
import logging
from typing import Optional

from app.receipts.upstream import ReceiptAPIClient
from app.receipts.workflow.batch import BatchNotFoundError, ReceiptBatch, SelectedFile
from app.receipts.workflow.cancellation import cancel_unsaved
from app.receipts.workflow.poller import JobPoller

logger = logging.getLogger(__name__)


def owner_key(token: str) -> str:
    """Stable, non-reversible owner id for a bearer token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]


class BatchRegistry:
    """One active batch per owner; replacing it stops the old poller first."""

    def __init__(self):
        self._batches: dict[str, ReceiptBatch] = {}
        self._active: dict[str, str] = {}
        self._pollers: dict[str, JobPoller] = {}

    async def open(self, owner: str, files: list[SelectedFile]) -> ReceiptBatch:
        previous = self._active.get(owner)
        if previous:
            await self._release(previous)
        batch = ReceiptBatch(owner, files)
        self._batches[batch.batch_id] = batch
        self._active[owner] = batch.batch_id
        logger.info("Opened batch %s with %d file(s)", batch.batch_id, len(files))
        return batch

    def get(self, batch_id: str, owner: str) -> ReceiptBatch:
        batch = self._batches.get(batch_id)
        if batch is None or batch.owner != owner:
            raise BatchNotFoundError(batch_id)
        return batch

    def current(self, owner: str) -> ReceiptBatch:
        batch_id = self._active.get(owner)
        if batch_id is None:
            raise BatchNotFoundError(owner)
        return self._batches[batch_id]

    def poller_for(self, batch_id: str) -> Optional[JobPoller]:
        return self._pollers.get(batch_id)

    def start_polling(self, batch: ReceiptBatch, poller: JobPoller) -> bool:
        """Start the batch's timer. Returns False if the batch was released."""
        if self._batches.get(batch.batch_id) is not batch:
            logger.info("Not polling released batch %s", batch.batch_id)
            return False
        if batch.batch_id in self._pollers:
            raise RuntimeError(f"Batch {batch.batch_id} is already polling")
        self._pollers[batch.batch_id] = poller
        poller.start()
        return True

    async def discard(self, batch_id: str, owner: str, client: ReceiptAPIClient, token: str) -> int:
        """Drop a batch and cancel its unsaved jobs. Returns cancels attempted."""
        batch = self.get(batch_id, owner)
        await self._release(batch_id)
        return await cancel_unsaved(batch, client, token)

    async def _release(self, batch_id: str) -> None:
        poller = self._pollers.pop(batch_id, None)
        if poller is not None:
            await poller.stop()
        batch = self._batches.pop(batch_id, None)
        if batch is not None and self._active.get(batch.owner) == batch_id:
            del self._active[batch.owner]
        logger.info("Released batch %s", batch_id)

    async def shutdown(self) -> None:
        for batch_id in set(self._batches) | set(self._pollers):
            await self._release(batch_id)


registry = BatchRegistry()


def get_registry() -> BatchRegistry:
    """Batch registry dependency"""
    return registry
