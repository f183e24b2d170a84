"""
Document store: an async cache of the document list and stats for front ends.

The store holds one immutable StoreSnapshot and replaces it wholesale on every
change, notifying subscribers with the new snapshot. Two rules govern failures:

- refresh(): the list and the stats are fetched concurrently and applied
  together. If either fetch fails the snapshot is cleared to no documents, no
  stats and the error message, so a stale list is never shown as current.
- mutate(): if the operation fails, the last good documents and stats are
  kept, the error is recorded, and the exception is re-raised to the caller.
  On success the store refreshes.

When refreshes overlap, only the most recently started one is applied.

Usage:
    store = DocumentStore(LocalCommandClient(SessionLocal))
    unsubscribe = store.subscribe(render)
    await store.refresh()
    await store.analyze_document(document_id)
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from legal_review.commands import CommandClient
from legal_review.schemas import DocumentResponse, DocumentStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreSnapshot:
    documents: Tuple[DocumentResponse, ...] = ()
    stats: Optional[DocumentStats] = None
    loading: bool = True
    error: Optional[str] = None


Listener = Callable[[StoreSnapshot], None]


class DocumentStore:
    def __init__(self, commands: CommandClient):
        self._commands = commands
        self._snapshot = StoreSnapshot()
        self._listeners: List[Listener] = []
        self._generation = 0

    @property
    def snapshot(self) -> StoreSnapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for new snapshots. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, **changes) -> None:
        self._snapshot = dataclasses.replace(self._snapshot, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception:
                logger.exception("Store listener failed")

    async def refresh(self) -> None:
        """Reload documents and stats. Never raises; failures land in snapshot.error."""
        self._generation += 1
        generation = self._generation
        self._publish(loading=True, error=None)

        try:
            docs, stats = await asyncio.gather(
                self._commands.list_documents(),
                self._commands.get_stats(),
            )
        except Exception as e:
            if generation == self._generation:
                logger.warning(f"Document refresh failed: {e}")
                self._publish(documents=(), stats=None, error=str(e), loading=False)
            return

        if generation != self._generation:
            logger.debug("Discarding superseded refresh result")
            return
        self._publish(documents=tuple(docs), stats=stats, error=None, loading=False)

    async def mutate(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run a command that changes documents, then refresh.

        Raises:
            Exception: Whatever the operation raised; documents and stats are kept
        """
        self._publish(error=None)
        try:
            result = await operation()
        except Exception as e:
            self._publish(error=str(e))
            raise
        await self.refresh()
        return result

    async def remove_document(self, document_id: str) -> None:
        await self.mutate(lambda: self._commands.delete_document(document_id))

    async def upload_document(self, file_path: str, contract_type: str) -> DocumentResponse:
        return await self.mutate(lambda: self._commands.upload(file_path, contract_type))

    async def extract_text(self, document_id: str) -> Optional[DocumentResponse]:
        return await self.mutate(lambda: self._commands.extract_text(document_id))

    async def analyze_document(self, document_id: str):
        return await self.mutate(lambda: self._commands.analyze(document_id))

    async def compare_documents(self, document_a_id: str, document_b_id: str):
        return await self.mutate(lambda: self._commands.compare(document_a_id, document_b_id))

    async def generate_report(self, document_id: str):
        return await self.mutate(lambda: self._commands.generate_report(document_id))
