"""
Click storage strategies using Strategy Pattern.

Allows switching between different analytics databases:
- SQLite: Development/testing
- ClickHouse: Production (optimized for analytics)

Every aggregate query applies the same match predicate:
``short_code = X AND timestamp >= since AND NOT is_bot``.
Groups are ordered by count descending, then by group key ascending.

Blocking I/O (sqlite3, HTTP) runs in a worker thread through
``asyncio.to_thread``; the click worker may share the API event loop.
"""

from abc import ABC, abstractmethod
from typing import Dict, List
from datetime import datetime, timezone
import asyncio
import sqlite3

import requests
import structlog

from shortlink_app.queue.models import ClickEvent

logger = structlog.get_logger(__name__)

UTM_COLUMNS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")

# Column order used for inserts
CLICK_COLUMNS = (
    "short_code", "link_id", "timestamp", "ip_address", "user_agent", "referrer",
    "browser", "os", "device_type", "country", "city", "is_bot", "is_unique",
    "visitor_id", *UTM_COLUMNS,
)


def _check_utm_column(column: str) -> str:
    if column not in UTM_COLUMNS:
        raise ValueError(f"Unknown UTM column: {column}")
    return column


def _format_timestamp(value: datetime) -> str:
    """UTC, fixed width, so string comparison is chronological"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S.%f")


class ClickStorageStrategy(ABC):
    """
    Abstract base class for click storage strategies.

    Writes are append-only. Reads are the dashboard aggregates; they do not
    check ownership, callers (AnalyticsService) must do that first.
    """

    @abstractmethod
    async def store_click(self, event: ClickEvent) -> bool:
        """
        Store a single click event.

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    async def store_clicks(self, events: List[ClickEvent]) -> bool:
        """
        Store multiple click events in batch (optimized for performance).

        Returns:
            True if successful, False otherwise
        """
        pass

    async def flush(self) -> None:
        """Write out anything buffered (no-op for unbuffered storages)"""
        return None

    @abstractmethod
    async def summary(self, short_code: str, since: datetime) -> Dict[str, int]:
        """{"total_clicks": n, "unique_visitors": n}"""
        pass

    @abstractmethod
    async def timeseries(self, short_code: str, since: datetime) -> List[Dict]:
        """[{"date": "YYYY-MM-DD", "clicks": n, "unique": n}] ascending by date"""
        pass

    @abstractmethod
    async def devices(self, short_code: str, since: datetime) -> List[Dict]:
        """[{"name": device_type, "value": n}]"""
        pass

    @abstractmethod
    async def utm_breakdown(self, short_code: str, since: datetime, column: str) -> List[Dict]:
        """[{"name": value, "clicks": n}], clicks without the tag excluded"""
        pass

    @abstractmethod
    async def locations(self, short_code: str, since: datetime) -> List[Dict]:
        """[{"country": c, "city": c, "clicks": n}], country "Unknown" excluded"""
        pass

    @abstractmethod
    async def referrers(self, short_code: str, since: datetime) -> List[Dict]:
        """[{"referrer": r, "clicks": n}]"""
        pass


class SQLiteClickStorage(ClickStorageStrategy):
    """
    SQLite implementation for click storage.

    Pros:
    - Zero configuration (no external services)
    - Perfect for development and demos

    Cons:
    - Not optimized for analytics queries
    - Slower for large datasets (>10M rows)
    - Not distributed

    Use case:
    - Development environment
    - Demos and testing
    """

    MATCH = "short_code = ? AND timestamp >= ? AND is_bot = 0"

    def __init__(self, db_path: str = "analytics.db"):
        self.db_path = db_path
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_database(self):
        """Create analytics table if it doesn't exist"""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS link_clicks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    short_code TEXT NOT NULL,
                    link_id INTEGER NOT NULL,
                    timestamp TEXT NOT NULL,
                    ip_address TEXT,
                    user_agent TEXT,
                    referrer TEXT NOT NULL DEFAULT 'Direct',
                    browser TEXT,
                    os TEXT,
                    device_type TEXT,
                    country TEXT,
                    city TEXT,
                    is_bot INTEGER NOT NULL DEFAULT 0,
                    is_unique INTEGER NOT NULL DEFAULT 0,
                    visitor_id TEXT,
                    utm_source TEXT,
                    utm_medium TEXT,
                    utm_campaign TEXT,
                    utm_term TEXT,
                    utm_content TEXT
                )
            """)
            # Every dashboard query filters on (short_code, timestamp)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_link_clicks_code_ts
                ON link_clicks (short_code, timestamp)
            """)
            conn.commit()
        finally:
            conn.close()
        logger.info("sqlite_click_storage_initialized", path=self.db_path)

    def _query(self, sql: str, params: tuple) -> list:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def _insert(self, rows: list) -> None:
        placeholders = ", ".join("?" for _ in CLICK_COLUMNS)
        conn = self._connect()
        try:
            conn.executemany(
                f"INSERT INTO link_clicks ({', '.join(CLICK_COLUMNS)}) VALUES ({placeholders})",
                rows
            )
            conn.commit()
        finally:
            conn.close()

    async def _fetch(self, sql: str, params: tuple) -> list:
        return await asyncio.to_thread(self._query, sql, params)

    async def store_click(self, event: ClickEvent) -> bool:
        return await self.store_clicks([event])

    async def store_clicks(self, events: List[ClickEvent]) -> bool:
        if not events:
            return True

        rows = [
            (
                event.short_code,
                event.link_id,
                _format_timestamp(event.timestamp),
                event.ip_address,
                event.user_agent,
                event.referrer,
                event.browser,
                event.os,
                event.device_type,
                event.country,
                event.city,
                int(event.is_bot),
                int(event.is_unique),
                event.visitor_id,
                event.utm_source,
                event.utm_medium,
                event.utm_campaign,
                event.utm_term,
                event.utm_content,
            )
            for event in events
        ]
        try:
            await asyncio.to_thread(self._insert, rows)
            return True

        except sqlite3.Error as e:
            logger.error("sqlite_click_store_failed", error=str(e), count=len(events))
            return False

    async def summary(self, short_code: str, since: datetime) -> Dict[str, int]:
        rows = await self._fetch(f"""
            SELECT COUNT(*), COALESCE(SUM(is_unique), 0)
            FROM link_clicks
            WHERE {self.MATCH}
        """, (short_code, _format_timestamp(since)))

        total, unique = rows[0]
        return {"total_clicks": total, "unique_visitors": unique}

    async def timeseries(self, short_code: str, since: datetime) -> List[Dict]:
        rows = await self._fetch(f"""
            SELECT substr(timestamp, 1, 10) AS day, COUNT(*), SUM(is_unique)
            FROM link_clicks
            WHERE {self.MATCH}
            GROUP BY day
            ORDER BY day
        """, (short_code, _format_timestamp(since)))

        return [{"date": row[0], "clicks": row[1], "unique": row[2]} for row in rows]

    async def devices(self, short_code: str, since: datetime) -> List[Dict]:
        rows = await self._fetch(f"""
            SELECT device_type, COUNT(*) AS count
            FROM link_clicks
            WHERE {self.MATCH}
            GROUP BY device_type
            ORDER BY count DESC, device_type
        """, (short_code, _format_timestamp(since)))

        return [{"name": row[0], "value": row[1]} for row in rows]

    async def utm_breakdown(self, short_code: str, since: datetime, column: str) -> List[Dict]:
        column = _check_utm_column(column)
        rows = await self._fetch(f"""
            SELECT {column}, COUNT(*) AS count
            FROM link_clicks
            WHERE {self.MATCH} AND {column} IS NOT NULL
            GROUP BY {column}
            ORDER BY count DESC, {column}
        """, (short_code, _format_timestamp(since)))

        return [{"name": row[0], "clicks": row[1]} for row in rows]

    async def locations(self, short_code: str, since: datetime) -> List[Dict]:
        rows = await self._fetch(f"""
            SELECT country, city, COUNT(*) AS count
            FROM link_clicks
            WHERE {self.MATCH} AND country != 'Unknown'
            GROUP BY country, city
            ORDER BY count DESC, country, city
        """, (short_code, _format_timestamp(since)))

        return [{"country": row[0], "city": row[1], "clicks": row[2]} for row in rows]

    async def referrers(self, short_code: str, since: datetime) -> List[Dict]:
        rows = await self._fetch(f"""
            SELECT referrer, COUNT(*) AS count
            FROM link_clicks
            WHERE {self.MATCH}
            GROUP BY referrer
            ORDER BY count DESC, referrer
        """, (short_code, _format_timestamp(since)))

        return [{"referrer": row[0], "clicks": row[1]} for row in rows]


class ClickHouseClickStorage(ClickStorageStrategy):
    """
    ClickHouse implementation for high-performance analytics.

    ClickHouse is a columnar database optimized for OLAP queries:

    Pros:
    - 10-100x faster than traditional SQL for aggregations
    - Handles billions of rows easily
    - Columnar storage (10x compression)

    Cons:
    - Requires separate ClickHouse server
    - Eventually consistent (not ACID)

    Talks to the HTTP interface. Query values are sent as server-side
    parameters ({name:Type} placeholders), never interpolated.
    """

    TABLE = "shortlink.link_clicks"
    MATCH = (
        "short_code = {short_code:String} "
        "AND timestamp >= {since:DateTime64(6, 'UTC')} "
        "AND is_bot = 0"
    )

    def __init__(self, url: str = "http://localhost:8123", buffer_size: int = 1000, timeout: int = 5):
        """
        Args:
            url: ClickHouse HTTP endpoint
            buffer_size: Number of events to buffer before bulk insert
            timeout: HTTP timeout in seconds
        """
        self.url = url
        self.buffer_size = buffer_size
        self.timeout = timeout
        self.buffer: List[ClickEvent] = []
        self.buffer_lock = asyncio.Lock()
        self._init_database()

    def _init_database(self):
        """
        Create ClickHouse table if it doesn't exist.

        Table design:
        - MergeTree engine, partitioned by month
        - Ordered by (short_code, timestamp) to match the dashboard predicate
        """
        try:
            self._execute("CREATE DATABASE IF NOT EXISTS shortlink")
            self._execute(f"""
                CREATE TABLE IF NOT EXISTS {self.TABLE} (
                    short_code String,
                    link_id UInt64,
                    timestamp DateTime64(6, 'UTC'),
                    ip_address Nullable(String),
                    user_agent Nullable(String),
                    referrer String,
                    browser String,
                    os String,
                    device_type String,
                    country String,
                    city String,
                    is_bot UInt8,
                    is_unique UInt8,
                    visitor_id Nullable(String),
                    utm_source Nullable(String),
                    utm_medium Nullable(String),
                    utm_campaign Nullable(String),
                    utm_term Nullable(String),
                    utm_content Nullable(String)
                )
                ENGINE = MergeTree()
                PARTITION BY toYYYYMM(timestamp)
                ORDER BY (short_code, timestamp)
            """)
            logger.info("clickhouse_click_storage_initialized", url=self.url)
        except requests.RequestException as e:
            # Writes will fail (and be logged) until the server is reachable
            logger.warning("clickhouse_initialization_failed", url=self.url, error=str(e))

    def _execute(self, sql: str, params: Dict[str, str] = None, data: bytes = None, **options) -> requests.Response:
        query_params = {"query": sql, **options}
        for name, value in (params or {}).items():
            query_params[f"param_{name}"] = value

        response = requests.post(self.url, params=query_params, data=data, timeout=self.timeout)
        response.raise_for_status()
        return response

    async def _select(self, sql: str, short_code: str, since: datetime) -> List[Dict]:
        response = await asyncio.to_thread(
            self._execute,
            f"{sql} FORMAT JSON",
            {"short_code": short_code, "since": _format_timestamp(since)}
        )
        return response.json().get("data", [])

    async def store_click(self, event: ClickEvent) -> bool:
        """
        Buffer the event, flush when the buffer is full.

        Individual inserts are slow, bulk inserts are not.
        """
        async with self.buffer_lock:
            self.buffer.append(event)
            if len(self.buffer) >= self.buffer_size:
                await self._flush_buffer()
        return True

    async def store_clicks(self, events: List[ClickEvent]) -> bool:
        if not events:
            return True

        body = "\n".join(
            event.model_dump_json(include=set(CLICK_COLUMNS))
            for event in events
        )
        try:
            await asyncio.to_thread(
                self._execute,
                f"INSERT INTO {self.TABLE} FORMAT JSONEachRow",
                data=body.encode("utf-8"),
                date_time_input_format="best_effort"
            )
            return True
        except requests.RequestException as e:
            logger.error("clickhouse_click_store_failed", error=str(e), count=len(events))
            return False

    async def _flush_buffer(self):
        if not self.buffer:
            return
        events_to_write = self.buffer.copy()
        self.buffer.clear()
        await self.store_clicks(events_to_write)

    async def flush(self) -> None:
        async with self.buffer_lock:
            await self._flush_buffer()

    async def summary(self, short_code: str, since: datetime) -> Dict[str, int]:
        rows = await self._select(f"""
            SELECT count() AS total_clicks, sum(is_unique) AS unique_visitors
            FROM {self.TABLE}
            WHERE {self.MATCH}
        """, short_code, since)

        row = rows[0] if rows else {}
        return {
            "total_clicks": int(row.get("total_clicks", 0)),
            "unique_visitors": int(row.get("unique_visitors", 0)),
        }

    async def timeseries(self, short_code: str, since: datetime) -> List[Dict]:
        rows = await self._select(f"""
            SELECT toString(toDate(timestamp)) AS date, count() AS clicks, sum(is_unique) AS unique
            FROM {self.TABLE}
            WHERE {self.MATCH}
            GROUP BY date
            ORDER BY date
        """, short_code, since)

        return [
            {"date": row["date"], "clicks": int(row["clicks"]), "unique": int(row["unique"])}
            for row in rows
        ]

    async def devices(self, short_code: str, since: datetime) -> List[Dict]:
        rows = await self._select(f"""
            SELECT device_type, count() AS count
            FROM {self.TABLE}
            WHERE {self.MATCH}
            GROUP BY device_type
            ORDER BY count DESC, device_type
        """, short_code, since)

        return [{"name": row["device_type"], "value": int(row["count"])} for row in rows]

    async def utm_breakdown(self, short_code: str, since: datetime, column: str) -> List[Dict]:
        column = _check_utm_column(column)
        rows = await self._select(f"""
            SELECT {column} AS name, count() AS count
            FROM {self.TABLE}
            WHERE {self.MATCH} AND {column} IS NOT NULL
            GROUP BY name
            ORDER BY count DESC, name
        """, short_code, since)

        return [{"name": row["name"], "clicks": int(row["count"])} for row in rows]

    async def locations(self, short_code: str, since: datetime) -> List[Dict]:
        rows = await self._select(f"""
            SELECT country, city, count() AS count
            FROM {self.TABLE}
            WHERE {self.MATCH} AND country != 'Unknown'
            GROUP BY country, city
            ORDER BY count DESC, country, city
        """, short_code, since)

        return [
            {"country": row["country"], "city": row["city"], "clicks": int(row["count"])}
            for row in rows
        ]

    async def referrers(self, short_code: str, since: datetime) -> List[Dict]:
        rows = await self._select(f"""
            SELECT referrer, count() AS count
            FROM {self.TABLE}
            WHERE {self.MATCH}
            GROUP BY referrer
            ORDER BY count DESC, referrer
        """, short_code, since)

        return [{"referrer": row["referrer"], "clicks": int(row["count"])} for row in rows]
