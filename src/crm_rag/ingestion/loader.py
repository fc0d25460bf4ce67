"""Source loaders: read a declared data source into raw record dicts."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from crm_rag.errors import MalformedSourceError, SourceNotFoundError, UnsupportedSourceTypeError
from crm_rag.ingestion.models import DataSource, SourceType

logger = logging.getLogger(__name__)

ReadBytes = Callable[[str], Awaitable[bytes]]


async def read_file_bytes(path: str) -> bytes:
    """Read *path* from the local file system in a worker thread."""
    return await asyncio.to_thread(Path(path).read_bytes)


class SourceLoader:
    """Load raw records from a :class:`DataSource`.

    Parameters
    ----------
    read_bytes:
        Async callable returning the full contents of a path.  Defaults to
        :func:`read_file_bytes`; tests inject an in-memory reader.

    Every call re-reads the source; nothing is cached.
    """

    def __init__(self, read_bytes: ReadBytes | None = None) -> None:
        self._read_bytes = read_bytes or read_file_bytes
        self._readers: dict[SourceType, Callable[[DataSource], Awaitable[list[dict[str, Any]]]]] = {
            SourceType.JSON: self._load_json,
        }

    async def load(self, source: DataSource) -> list[dict[str, Any]]:
        """Return the records held by *source*.

        Raises
        ------
        UnsupportedSourceTypeError
            For declared types without a reader (``csv``, ``excel``).
        SourceNotFoundError
            When the file is missing or unreadable.
        MalformedSourceError
            When the content is not a JSON array of objects.
        """
        reader = self._readers.get(source.type)
        if reader is None:
            raise UnsupportedSourceTypeError(source.type.value)
        records = await reader(source)
        logger.debug("Loaded %d record(s) from %s", len(records), source.path)
        return records

    async def _load_json(self, source: DataSource) -> list[dict[str, Any]]:
        try:
            raw = await self._read_bytes(source.path)
        except OSError as exc:
            raise SourceNotFoundError(source.path, exc.strerror or type(exc).__name__) from exc

        try:
            data = json.loads(raw.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedSourceError(source.path, str(exc)) from exc

        if not isinstance(data, list):
            raise MalformedSourceError(source.path, f"expected a JSON array, got {type(data).__name__}")
        for i, item in enumerate(data):
            if not isinstance(item, dict):
                raise MalformedSourceError(
                    source.path, f"element {i} is {type(item).__name__}, expected an object"
                )
        return data
