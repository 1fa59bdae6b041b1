"""
Source Container - Centralized dependency injection container

Builds the process-wide objects in startup order
(schema -> database -> remote client -> replication queue -> store)
so the HTTP transport and tests share one wiring.
"""

import logging
from typing import Optional

from config import DatabaseConfig, SourceConfig
from database import DatabaseConnection
from query.features import FeatureSchema
from remote import DeepintClient
from replication import ReplicationQueue
from store import InstanceStore

logger = logging.getLogger(__name__)


class SourceContainer:
    """
    Container for the source server components with attribute access.
    """
    def __init__(
        self,
        database_config: DatabaseConfig,
        source_config: SourceConfig,
        db: Optional[DatabaseConnection] = None,
        queue: Optional[ReplicationQueue] = None,
    ):
        self.source_config = source_config
        self.schema = FeatureSchema.from_lists(source_config.fields, source_config.field_types)
        self.db = db or DatabaseConnection(database_config)
        self.remote: Optional[DeepintClient] = None
        if queue is None:
            self.remote = DeepintClient(
                source_config.deepint_url,
                source_config.public_key,
                source_config.secret_key,
            )
            queue = ReplicationQueue(self.remote.push_instances)
        self.queue = queue
        self.store = InstanceStore(self.db, self.schema, database_config.table, self.queue)

    async def start(self):
        """Connect the pool, then start replicating."""
        await self.db.connect()
        await self.queue.start()
        logger.info(f"Source ready: table={self.store.table} features={self.schema.names}")

    async def stop(self):
        await self.queue.stop()
        if self.remote is not None:
            await self.remote.aclose()
        await self.db.disconnect()
