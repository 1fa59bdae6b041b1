"""
Instance Store

Owns the source table: inserts coerced instances, counts, streams filtered
queries and looks up nominal values. Every statement comes from the query
builders, so values only ever reach PostgreSQL as bound parameters.
"""

import inspect
import logging
from typing import Any, AsyncIterator, Callable, Iterable, Optional, Sequence

from database import DatabaseConnection
from query.builder import build_count, build_distinct, build_insert, build_select
from query.coercion import coerce
from query.features import Feature, FeatureSchema, FeatureType
from query.filters import FilterNode
from replication import ReplicationQueue

logger = logging.getLogger(__name__)

# PostgreSQL accepts at most 32767 bind parameters per statement
MAX_BIND_PARAMS = 32767


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class InstanceStore:
    """Typed access to the source table."""

    def __init__(
        self,
        db: DatabaseConnection,
        schema: FeatureSchema,
        table: str,
        queue: Optional[ReplicationQueue] = None,
    ):
        self.db = db
        self.schema = schema
        self.table = table
        self.queue = queue

    def _rows_per_statement(self) -> int:
        return max(1, MAX_BIND_PARAMS // max(1, len(self.schema)))

    async def insert(self, instances: Sequence[list]) -> int:
        """
        Insert coerced instances in a single transaction.

        On success the instances are handed to the replication queue. Failures
        raise StoreError and nothing is enqueued.

        Returns:
            Number of inserted instances
        """
        if not instances:
            return 0

        chunk_size = self._rows_per_statement()
        async with self.db.transaction() as conn:
            for start in range(0, len(instances), chunk_size):
                sql, params = build_insert(self.schema, self.table, instances[start:start + chunk_size])
                logger.debug(f"[QUERY] {sql} ({len(params)} values)")
                await conn.execute(sql, *params)

        if self.queue is not None:
            self.queue.enqueue(list(instances))
        return len(instances)

    async def count(self, tree: Optional[FilterNode]) -> int:
        """Number of instances matching the filter."""
        sql, params = build_count(self.schema, self.table, tree)
        logger.debug(f"[QUERY] {sql} values={params}")
        total = await self.db.fetchval(sql, *params)
        return int(total or 0)

    def select_features(self, projection: Optional[Iterable[int]]) -> list[Feature]:
        """Projected features in request order, or every feature."""
        if not projection:
            return list(self.schema)
        features = [self.schema.get(i) for i in projection]
        features = [f for f in features if f is not None]
        return features or list(self.schema)

    async def iter_instances(
        self,
        tree: Optional[FilterNode],
        order: Optional[int] = None,
        direction: str = "asc",
        skip: Optional[int] = None,
        limit: Optional[int] = None,
        projection: Optional[Iterable[int]] = None,
    ) -> AsyncIterator[list]:
        """
        Lazily yield coerced instances matching the filter, in storage order.

        Rows are streamed through a cursor; the result set is never held in
        memory as a whole.
        """
        features = self.select_features(projection)
        sql, params = build_select(
            self.schema, self.table, tree, features,
            order=order, direction=direction, skip=skip, limit=limit,
        )
        logger.debug(f"[QUERY] {sql} values={params}")

        async for record in self.db.iterate(sql, *params):
            yield [coerce(record[f.name], f.type) for f in features]

    async def query(
        self,
        tree: Optional[FilterNode],
        order: Optional[int],
        direction: str,
        skip: Optional[int],
        limit: Optional[int],
        projection: Optional[Iterable[int]],
        on_schema: Callable[[list[Feature]], Any],
        on_row: Callable[[list], Any],
    ) -> None:
        """
        Push-style query: on_schema once with the resolved features, then
        on_row once per instance. Callbacks may be plain or async functions.
        Errors propagate after the last successful callback.
        """
        await _maybe_await(on_schema(self.select_features(projection)))
        async for instance in self.iter_instances(tree, order, direction, skip, limit, projection):
            await _maybe_await(on_row(instance))

    async def distinct_values(
        self,
        tree: Optional[FilterNode],
        text_query: Optional[str],
        feature_index: Any,
    ) -> list[str]:
        """
        Up to 128 distinct values of a nominal feature, ordered, optionally
        restricted to those starting with text_query.
        Non-nominal features return an empty list without querying.
        """
        feature = self.schema.get(feature_index)
        if feature is None or feature.type != FeatureType.NOMINAL:
            return []

        sql, params = build_distinct(
            self.schema, self.table, tree, feature, (text_query or "").lower()
        )
        logger.debug(f"[QUERY] {sql} values={params}")
        rows = await self.db.fetch(sql, *params)
        return [str(row[feature.name]) for row in rows if row[feature.name] is not None]
