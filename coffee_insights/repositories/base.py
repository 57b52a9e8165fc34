"""
Base repository with connection management and schema initialization.

All repository mixins run their queries through this class.
"""
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional, Sequence

import duckdb

from coffee_insights.config import config
from coffee_insights.models import OrderStatus
from coffee_insights.observability import get_logger

logger = get_logger(__name__)

IN_MEMORY = ":memory:"

COMPLETED = OrderStatus.COMPLETED.value


def _placeholders(values: Sequence[Any]) -> str:
    """Build a `?, ?, ?` list for an IN clause."""
    return ",".join("?" * len(values))


class BaseRepository:
    """
    Base repository with DuckDB connection management.

    Usage:
        class OrdersMixin:
            async def get_order(self, order_id: int):
                return await self.fetchone("SELECT * FROM orders WHERE id = ?", [order_id])
    """

    def __init__(self, db_path: str = config.database.path):
        self.db_path = str(db_path)
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = asyncio.Lock()
        self._schema_initialized = False

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        async with self._lock:
            if self._connection is None:
                if self.db_path != IN_MEMORY:
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                self._connection = duckdb.connect(self.db_path)
                if not self._schema_initialized:
                    await self._init_schema()
                    self._schema_initialized = True
                logger.info(f"DuckDB connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        async with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
                # An in-memory database is gone once closed
                if self.db_path == IN_MEMORY:
                    self._schema_initialized = False
                logger.info("DuckDB connection closed")

    @asynccontextmanager
    async def connection(self):
        """Get database connection, connecting lazily."""
        if self._connection is None:
            await self.connect()
        yield self._connection

    async def execute(self, sql: str, params: list = None) -> Any:
        """Execute SQL query and return result."""
        async with self.connection() as conn:
            if params:
                return conn.execute(sql, params)
            return conn.execute(sql)

    async def fetchone(self, sql: str, params: list = None) -> Optional[tuple]:
        """Execute query and fetch one result."""
        result = await self.execute(sql, params)
        return result.fetchone()

    async def fetchall(self, sql: str, params: list = None) -> list:
        """Execute query and fetch all results."""
        result = await self.execute(sql, params)
        return result.fetchall()

    async def _init_schema(self) -> None:
        """Create database schema if not exists."""
        schema_sql = """
        -- Registered customers
        CREATE TABLE IF NOT EXISTS customers (
            id INTEGER PRIMARY KEY,
            name VARCHAR,
            email VARCHAR,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        -- Product categories
        CREATE TABLE IF NOT EXISTS categories (
            id INTEGER PRIMARY KEY,
            name VARCHAR NOT NULL
        );

        -- Products catalog
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY,
            category_id INTEGER,
            name VARCHAR NOT NULL,
            description VARCHAR,
            price DECIMAL(10, 2) NOT NULL DEFAULT 0,
            is_available BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        -- Orders
        CREATE TABLE IF NOT EXISTS orders (
            id INTEGER PRIMARY KEY,
            customer_id INTEGER NOT NULL,
            status VARCHAR NOT NULL,
            total_amount DECIMAL(12, 2) NOT NULL,
            created_at TIMESTAMP NOT NULL
        );

        -- Order line items
        -- No key on id: a re-sync deletes and re-inserts the same ids in one transaction
        CREATE TABLE IF NOT EXISTS order_items (
            id BIGINT NOT NULL,
            order_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            quantity INTEGER NOT NULL,
            unit_price DECIMAL(10, 2) NOT NULL
        );

        -- Coffee beans
        CREATE TABLE IF NOT EXISTS coffee_beans (
            id INTEGER PRIMARY KEY,
            name VARCHAR NOT NULL,
            origin_country VARCHAR NOT NULL,
            region VARCHAR,
            processing_method VARCHAR,
            tasting_notes VARCHAR,
            elevation VARCHAR,
            variety VARCHAR,
            is_featured BOOLEAN NOT NULL DEFAULT FALSE,
            stock_quantity INTEGER NOT NULL DEFAULT 0
        );

        -- Optional declared taste profile, at most one per customer
        CREATE TABLE IF NOT EXISTS taste_profiles (
            customer_id INTEGER PRIMARY KEY,
            favorite_roast VARCHAR,
            flavor_preferences VARCHAR[]
        );
        """
        self._connection.execute(schema_sql)
        logger.debug("DuckDB schema initialized")
