"""
Construction of a ready-to-use memory from configuration.

Uses PostgreSQL when ``DATABASE_URL`` is set and an in-process store
otherwise. A configured database that cannot be reached is an error, not a
reason to fall back to memory.
"""

import logging
from dataclasses import replace
from typing import Optional

from dotenv import load_dotenv

from .config import MemoryConfig
from .store import InMemoryMemoryStore, MemoryStore
from .token_budget import TokenEstimator
from .window import TokenWindowChatMemory

logger = logging.getLogger(__name__)


def create_store(config: MemoryConfig) -> MemoryStore:
    """Build the store described by ``config`` (``config.store`` wins if set)."""
    if config.store is not None:
        return config.store
    if config.database_url:
        # Imported lazily so psycopg is only loaded when PostgreSQL is used
        from .postgres_store import PostgresMemoryStore

        logger.info("Using PostgreSQL chat memory store")
        return PostgresMemoryStore(dsn=config.database_url, timeout=config.store_timeout)
    logger.info("DATABASE_URL not set, using in-memory chat memory store")
    return InMemoryMemoryStore(timeout=config.store_timeout)


def create_chat_memory(
    config: Optional[MemoryConfig] = None,
    estimator: Optional[TokenEstimator] = None,
) -> TokenWindowChatMemory:
    """
    Create a TokenWindowChatMemory.

    Without ``config`` the settings are read from the environment, after
    loading a ``.env`` file if one exists.
    """
    if config is None:
        load_dotenv(override=True)
        config = MemoryConfig.from_env()
    config.validate()
    config = replace(config, store=create_store(config))
    return TokenWindowChatMemory(config, estimator=estimator)
