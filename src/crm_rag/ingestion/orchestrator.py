"""Bulk ingestion: load, validate, format, embed and upsert CRM records.

Each :class:`IngestionRequest` is processed independently.  A bad source
(missing file, unsupported type, malformed JSON) or a bad record never
aborts the batch: the failure is logged, recorded in the result, and the
rest of the work carries on.

Requests run concurrently up to ``concurrency`` at a time.  Records of one
request are upserted sequentially in source order because the index keys
documents by record id and the last write wins.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import Counter
from typing import Any, Sequence

from crm_rag.config import settings
from crm_rag.errors import AggregateIngestionError, EmptyIngestionError, IngestionError, RecordValidationError
from crm_rag.ingestion.embedder import TextEmbedder
from crm_rag.ingestion.formatter import format_record
from crm_rag.ingestion.loader import SourceLoader
from crm_rag.ingestion.models import (
    CrmRecord,
    IngestionFailure,
    IngestionRequest,
    IngestionResult,
    RecordKind,
    validate_record,
)
from crm_rag.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


def document_id(kind: RecordKind, record: CrmRecord) -> str:
    """Index key for *record*: ``"<kind>:<record id>"``."""
    return f"{kind.value}:{record.record_id}"


def record_payload(kind: RecordKind, record: CrmRecord) -> dict[str, Any]:
    """Metadata stored next to the embedding: the record plus its ``type``."""
    return {**record.model_dump(mode="json", by_alias=True, exclude_none=True), "type": kind.value}


class _Batch:
    """Mutable bookkeeping shared by the request tasks of one batch."""

    def __init__(self) -> None:
        self.counts: Counter[RecordKind] = Counter()
        self.failures: list[IngestionFailure] = []
        self.finished: set[int] = set()
        # Upserts run as their own tasks so cancelling a request never
        # abandons a write the store is already performing.
        self.writes: set[asyncio.Task[bool]] = set()

    def fail(
        self,
        request: IngestionRequest,
        stage: str,
        exc: BaseException | None = None,
        *,
        record_id: str | None = None,
        message: str = "",
    ) -> None:
        self.failures.append(
            IngestionFailure(
                source_path=request.source.path,
                data_type=request.data_type,
                stage=stage,
                record_id=record_id,
                error_type=type(exc).__name__ if exc is not None else "",
                message=message or (str(exc) if exc is not None else ""),
            )
        )


class IngestionOrchestrator:
    """Ingest CRM data sources into a vector store.

    Parameters
    ----------
    loader:
        Reads raw records from a data source.
    embedder:
        Embedding capability applied to each formatted record.
    store:
        Target vector store.
    concurrency:
        Maximum number of requests processed at the same time.
    """

    def __init__(
        self,
        loader: SourceLoader,
        embedder: TextEmbedder,
        store: VectorStoreBase,
        *,
        concurrency: int = settings.ingest_concurrency,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._loader = loader
        self._embedder = embedder
        self._store = store
        self._concurrency = concurrency
        # Stores that cannot take parallel writes get one writer at a time.
        self._write_lock: asyncio.Lock | None = (
            None if store.supports_concurrent_writes else asyncio.Lock()
        )

    async def ingest(self, request: IngestionRequest) -> IngestionResult:
        """Convenience wrapper around :meth:`ingest_bulk` for one request."""
        return await self.ingest_bulk([request])

    async def ingest_bulk(
        self,
        requests: Sequence[IngestionRequest],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> IngestionResult:
        """Ingest every request and return aggregate counts.

        Parameters
        ----------
        requests:
            Sources to ingest, each with the kind of records it contains.
        cancel_event:
            When set, unfinished requests are cancelled and the partial
            result is returned with ``cancelled=True``.  Upserts already
            handed to the store are awaited and counted.

        Returns
        -------
        IngestionResult
            Per-kind counts of upserted records plus every failure.

        Raises
        ------
        EmptyIngestionError
            When *requests* is empty.
        AggregateIngestionError
            When every request failed to load (and the batch was not
            cancelled).
        """
        if not requests:
            raise EmptyIngestionError()

        batch = _Batch()
        semaphore = asyncio.Semaphore(self._concurrency)

        async def run(index: int, request: IngestionRequest) -> None:
            async with semaphore:
                await self._ingest_request(request, batch)
            batch.finished.add(index)

        tasks = [asyncio.create_task(run(i, req)) for i, req in enumerate(requests)]
        cancelled, outcomes = await self._wait(tasks, cancel_event, batch)

        for i, (request, outcome) in enumerate(zip(requests, outcomes)):
            if isinstance(outcome, Exception):
                logger.error(
                    "Unexpected error ingesting %s", request.source.path,
                    exc_info=(type(outcome), outcome, outcome.__traceback__),
                )
                batch.fail(request, "load", outcome)
                batch.finished.add(i)

        if cancelled:
            for i, request in enumerate(requests):
                if i not in batch.finished:
                    batch.fail(request, "cancelled", message="ingestion cancelled")

        result = IngestionResult.from_counts(batch.counts, batch.failures, cancelled=cancelled)
        logger.info("Ingestion finished: %s", result.summary())

        load_failures = [f for f in batch.failures if f.stage == "load"]
        if not cancelled and len(load_failures) == len(requests):
            raise AggregateIngestionError(load_failures)
        return result

    # -- internals ------------------------------------------------------------

    @staticmethod
    async def _wait(
        tasks: list[asyncio.Task[None]],
        cancel_event: asyncio.Event | None,
        batch: _Batch,
    ) -> tuple[bool, list[BaseException | None]]:
        """Wait for *tasks*.

        Returns whether *cancel_event* interrupted them, and each task's
        outcome (``None`` or the exception it ended with).
        """
        everything = asyncio.gather(*tasks, return_exceptions=True)
        if cancel_event is None:
            return False, await everything

        watcher = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({everything, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher

        if everything.done():
            return False, everything.result()
        for task in tasks:
            task.cancel()
        outcomes = await everything
        if batch.writes:
            await asyncio.gather(*batch.writes, return_exceptions=True)
        logger.warning("Ingestion cancelled with %d request(s) unfinished",
                       sum(1 for t in tasks if t.cancelled()))
        return True, outcomes

    async def _ingest_request(self, request: IngestionRequest, batch: _Batch) -> None:
        kind = request.data_type
        try:
            raw_records = await self._loader.load(request.source)
        except IngestionError as exc:
            logger.warning("Skipping source %s (%s): %s", request.source.path, kind.value, exc)
            batch.fail(request, "load", exc)
            return
        except Exception as exc:
            logger.exception("Unexpected error loading %s", request.source.path)
            batch.fail(request, "load", exc)
            return

        ingested = 0
        for raw in raw_records:
            if await self._ingest_record(request, raw, batch):
                ingested += 1
        logger.info(
            "Ingested %d/%d %s record(s) from %s",
            ingested, len(raw_records), kind.value, request.source.path,
        )

    async def _ingest_record(self, request: IngestionRequest, raw: Any, batch: _Batch) -> bool:
        kind = request.data_type
        try:
            record = validate_record(raw, kind)
        except RecordValidationError as exc:
            logger.warning("Skipping record in %s: %s", request.source.path, exc)
            batch.fail(request, "validate", exc, record_id=exc.record_id)
            return False

        stage = "format"
        try:
            text = format_record(record, kind)
            stage = "embed"
            embedding = await self._embedder.embed(text)
        except Exception as exc:
            self._record_failure(request, batch, stage, record, exc)
            return False

        write = asyncio.ensure_future(self._write(request, record, embedding, text, batch))
        batch.writes.add(write)
        # Cancelling the request does not cancel the write; it is drained
        # and counted by ``_wait``.
        return await asyncio.shield(write)

    async def _write(
        self,
        request: IngestionRequest,
        record: CrmRecord,
        embedding: list[float],
        text: str,
        batch: _Batch,
    ) -> bool:
        kind = request.data_type
        try:
            await self._upsert(document_id(kind, record), embedding, text, record_payload(kind, record))
        except Exception as exc:
            self._record_failure(request, batch, "upsert", record, exc)
            return False
        batch.counts[kind] += 1
        return True

    @staticmethod
    def _record_failure(
        request: IngestionRequest, batch: _Batch, stage: str, record: CrmRecord, exc: Exception
    ) -> None:
        logger.warning(
            "Failed to %s %s record %s from %s: %s",
            stage, request.data_type.value, record.record_id, request.source.path, exc,
        )
        batch.fail(request, stage, exc, record_id=record.record_id)

    async def _upsert(self, doc_id: str, embedding: list[float], text: str, payload: dict[str, Any]) -> None:
        if self._write_lock is None:
            await self._store.upsert(doc_id, embedding, text, payload)
            return
        async with self._write_lock:
            await self._store.upsert(doc_id, embedding, text, payload)
