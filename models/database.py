"""SQLite product catalog, the read interface the alert engine queries."""
import csv
import sqlite3
import logging
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from models.products import ProductRecord

logger = logging.getLogger("stockalert.db")


class DataSourceError(Exception):
    """Raised when the catalog cannot answer a query."""


@runtime_checkable
class DataSource(Protocol):
    def query_low_stock(self, threshold) -> list: ...

    def query_out_of_stock(self) -> list: ...

    def compute_inventory_value(self) -> float: ...


class Database:
    def __init__(self, db_path="data/inventory.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.Lock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                unit_price REAL NOT NULL DEFAULT 0,
                units_in_stock INTEGER NOT NULL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_products_stock
                ON products(units_in_stock);
        """)
        self.conn.commit()

    def _select(self, sql, params=()):
        if self.conn is None:
            raise DataSourceError("Database is not connected")
        try:
            with self._lock:
                rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise DataSourceError(f"Query failed: {e}") from e
        return [ProductRecord.from_row(r) for r in rows]

    # --- Data source port ---

    def query_low_stock(self, threshold):
        """Products with 0 < units_in_stock < threshold."""
        return self._select(
            "SELECT * FROM products WHERE units_in_stock > 0 AND units_in_stock < ? ORDER BY id",
            (threshold,),
        )

    def query_out_of_stock(self):
        return self._select("SELECT * FROM products WHERE units_in_stock = 0 ORDER BY id")

    def compute_inventory_value(self):
        """Sum of unit_price * units_in_stock across the whole catalog."""
        return sum(p.stock_value for p in self.list_products())

    # --- Catalog management ---

    def list_products(self):
        return self._select("SELECT * FROM products ORDER BY id")

    def get_product(self, product_id):
        rows = self._select("SELECT * FROM products WHERE id = ?", (product_id,))
        return rows[0] if rows else None

    def upsert_products(self, products):
        """Insert or replace products. Accepts ProductRecord objects or dicts."""
        rows = []
        for p in products:
            if isinstance(p, dict):
                p = ProductRecord.from_row(p)
            rows.append((p.id, p.name, p.unit_price, p.units_in_stock))
        with self._lock:
            self.conn.executemany("""
                INSERT INTO products (id, name, unit_price, units_in_stock)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    unit_price = excluded.unit_price,
                    units_in_stock = excluded.units_in_stock
            """, rows)
            self.conn.commit()
        logger.debug(f"Upserted {len(rows)} products")
        return len(rows)

    def set_stock(self, product_id, units):
        with self._lock:
            cur = self.conn.execute(
                "UPDATE products SET units_in_stock = ? WHERE id = ?", (int(units), product_id)
            )
            self.conn.commit()
        return cur.rowcount > 0

    def import_csv(self, path):
        """Load products from a CSV with columns id,name,unit_price,units_in_stock."""
        with open(path, newline="") as f:
            reader = csv.DictReader(f)
            missing = {"id", "name", "unit_price", "units_in_stock"} - set(reader.fieldnames or [])
            if missing:
                raise ValueError(f"CSV is missing columns: {sorted(missing)}")
            records = [ProductRecord.from_row(row) for row in reader]
        count = self.upsert_products(records)
        logger.info(f"Imported {count} products from {path}")
        return count

    def product_count(self):
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]
