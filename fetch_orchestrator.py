"""Issue find() calls for a list and apply only the latest response.

Every fetch gets a sequence id when it is issued. Overlapping fetches are
allowed to run to completion; a response is applied only if its request is
still the most recently issued one, so the visible records always follow the
latest query rather than the latest arrival.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping

from data_sources import DataSource, build_expand_fields, normalize_find_result
from vista.query_key import query_key


logger = logging.getLogger("vista.fetch")

DEFAULT_FETCH_LIMIT = int(os.getenv("VISTA_FETCH_LIMIT", "100"))


@dataclass(frozen=True)
class FetchRequest:
    sequence_id: int
    object_name: str
    filter: Any = None
    sort: Any = None
    limit: int | None = None
    expand: tuple = ()
    fields: tuple | None = None

    def to_query(self) -> dict:
        query: dict = {}
        if self.filter:
            query["filter"] = self.filter
        if self.sort:
            query["sort"] = self.sort
        if self.limit is not None:
            query["limit"] = self.limit
        if self.expand:
            query["expand"] = list(self.expand)
        return query

    @property
    def key(self) -> str:
        return query_key(self.object_name, self.to_query())


@dataclass
class FetchState:
    records: List[dict] = field(default_factory=list)
    loading: bool = False
    error: str | None = None
    sequence_id: int = 0
    applied_sequence_id: int = 0
    schema: dict | None = None
    schema_error: str | None = None

    def snapshot(self) -> dict:
        return {
            "records": list(self.records),
            "loading": self.loading,
            "error": self.error,
            "sequence_id": self.sequence_id,
            "applied_sequence_id": self.applied_sequence_id,
        }


def _query_params(query: Any) -> Mapping[str, Any]:
    if query is None:
        return {}
    if hasattr(query, "to_params"):
        return query.to_params()
    if isinstance(query, Mapping):
        return query
    raise TypeError(f"Unsupported query type: {type(query).__name__}")


class DataFetchOrchestrator:
    def __init__(
        self,
        source: DataSource,
        object_name: str,
        *,
        require_schema: bool = False,
        limit: int | None = None,
        on_change: Callable[[FetchState], None] | None = None,
    ) -> None:
        self.source = source
        self.object_name = object_name
        self.require_schema = require_schema
        self.limit = DEFAULT_FETCH_LIMIT if limit is None else limit
        self.on_change = on_change
        self.state = FetchState()
        self._sequence = 0
        self._schema_task: asyncio.Task | None = None
        self._last_query: Mapping[str, Any] | None = None

    @property
    def current_sequence_id(self) -> int:
        return self._sequence

    def _emit(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state)

    async def _load_schema(self) -> dict | None:
        try:
            schema = await self.source.get_object_schema(self.object_name)
        except Exception as exc:
            logger.warning("schema_fetch_failed object=%s error=%s", self.object_name, exc)
            self.state.schema_error = str(exc)
            return None
        self.state.schema = schema if isinstance(schema, dict) else {}
        self.state.schema_error = None
        return self.state.schema

    async def ensure_schema(self) -> dict | None:
        """Load object metadata once; concurrent callers share one load.

        A failed load is retried by the next caller.
        """
        if self.state.schema is not None:
            return self.state.schema
        if self._schema_task is None:
            self._schema_task = asyncio.ensure_future(self._load_schema())
        task = self._schema_task
        schema = await task
        if schema is None and self._schema_task is task:
            self._schema_task = None
        return schema

    def _issue(self) -> int:
        self._sequence += 1
        self.state.sequence_id = self._sequence
        self.state.loading = True
        self._emit()
        return self._sequence

    def _is_current(self, sequence_id: int) -> bool:
        return sequence_id == self._sequence

    def _fail(self, message: str) -> None:
        self.state.error = message
        self.state.loading = False
        if self.state.applied_sequence_id == 0:
            self.state.records = []
        self._emit()

    async def fetch(self, query: Any = None) -> List[dict]:
        """Fetch records for ``query`` and return the records now displayed."""
        params = dict(_query_params(query))
        self._last_query = params
        sequence_id = self._issue()

        schema = await self.ensure_schema()
        if schema is None and self.require_schema:
            if self._is_current(sequence_id):
                logger.warning("fetch_skipped_no_schema object=%s seq=%s", self.object_name, sequence_id)
                self._fail(self.state.schema_error or "schema unavailable")
            return self.state.records

        fields = params.get("fields")
        limit = params.get("limit")
        request = FetchRequest(
            sequence_id=sequence_id,
            object_name=self.object_name,
            filter=params.get("filter"),
            sort=params.get("sort"),
            limit=self.limit if limit is None else limit,
            expand=tuple(build_expand_fields(schema, fields)) if schema is not None else (),
            fields=tuple(fields) if fields is not None else None,
        )
        return await self._run(request)

    async def _run(self, request: FetchRequest) -> List[dict]:
        start = time.perf_counter()
        try:
            result = await self.source.find(request.object_name, request.to_query())
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            if not self._is_current(request.sequence_id):
                logger.info("fetch_failed_stale object=%s seq=%s error=%s", request.object_name, request.sequence_id, exc)
                return self.state.records
            logger.warning(
                "fetch_failed object=%s seq=%s key=%s ms=%.1f error=%s",
                request.object_name,
                request.sequence_id,
                request.key,
                elapsed_ms,
                exc,
            )
            self._fail(str(exc))
            return self.state.records

        elapsed_ms = (time.perf_counter() - start) * 1000
        if not self._is_current(request.sequence_id):
            logger.info(
                "fetch_discarded_stale object=%s seq=%s latest=%s",
                request.object_name,
                request.sequence_id,
                self._sequence,
            )
            return self.state.records
        records = normalize_find_result(result)
        self.state.records = records
        self.state.error = None
        self.state.loading = False
        self.state.applied_sequence_id = request.sequence_id
        logger.info(
            "fetch_applied object=%s seq=%s key=%s count=%s ms=%.1f",
            request.object_name,
            request.sequence_id,
            request.key,
            len(records),
            elapsed_ms,
        )
        self._emit()
        return records

    async def refresh(self) -> List[dict]:
        return await self.fetch(self._last_query or {})
