import asyncio
import os
from typing import Iterable, List, Optional
from sqlalchemy import create_engine, text
from src.connectors.base import Connection
from src.connectors.registry import DriverRegistry
from src.connectors.sqlite import SQLiteConnector
from src.db.connection import ConnectionManager
from src.models.config import ConnectionConfig
from src.models.errors import WriteError

def sqlite_config(path: str) -> ConnectionConfig:
    return ConnectionConfig(db_type="sqlite", host="", port=0, user="", db_name=path)

def create_database(directory: str, name: str) -> str:
    path = os.path.join(directory, name)
    engine = create_engine(f"sqlite:///{path}")
    with engine.connect():
        pass
    engine.dispose()
    return path

def create_table(path: str, table: str, rows: int = 0, primary_key: bool = True) -> None:
    """建表 (id, name, amount) 并写入 rows 行测试数据"""
    id_column = "id INTEGER PRIMARY KEY" if primary_key else "id INTEGER"
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        conn.execute(text(f'CREATE TABLE "{table}" ({id_column}, name VARCHAR(64) NOT NULL, amount REAL)'))
        if rows:
            conn.execute(
                text(f'INSERT INTO "{table}" (id, name, amount) VALUES (:id, :name, :amount)'),
                [{"id": i, "name": f"{table}-{i}", "amount": i * 1.5} for i in range(1, rows + 1)]
            )
    engine.dispose()

def drop_table(path: str, table: str) -> None:
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        conn.execute(text(f'DROP TABLE "{table}"'))
    engine.dispose()

def row_count(path: str, table: str) -> int:
    engine = create_engine(f"sqlite:///{path}")
    with engine.connect() as conn:
        count = conn.execute(text(f'SELECT COUNT(*) FROM "{table}"')).scalar()
    engine.dispose()
    return count

def fetch_rows(path: str, table: str) -> List[tuple]:
    engine = create_engine(f"sqlite:///{path}")
    with engine.connect() as conn:
        rows = [tuple(row) for row in conn.execute(text(f'SELECT * FROM "{table}" ORDER BY id'))]
    engine.dispose()
    return rows

class FlakySQLiteConnector(SQLiteConnector):
    """目标端在指定表的第 N 个批次拒绝写入"""
    name = "flaky"
    aliases = ()

    def __init__(self, fail_tables: Iterable[str] = (), fail_on_batch: int = 1,
                 after_write=None):
        self.fail_tables = set(fail_tables)
        self.fail_on_batch = fail_on_batch
        self.after_write = after_write
        self.batches = {}

    async def write_batch(self, conn, table_name, descriptor, rows):
        batch_num = self.batches.get(table_name, 0) + 1
        self.batches[table_name] = batch_num
        if table_name in self.fail_tables and batch_num == self.fail_on_batch:
            raise WriteError(f"Target rejected batch {batch_num} of table {table_name}")
        written = await super().write_batch(conn, table_name, descriptor, rows)
        if self.after_write is not None:
            self.after_write(table_name, batch_num)
        return written

def flaky_config(path: str) -> ConnectionConfig:
    return ConnectionConfig(db_type="flaky", host="", port=0, user="", db_name=path)

class TrackingSQLiteConnector(SQLiteConnector):
    """记录打开的连接和并发计数，可放慢连接、计数和写入"""
    aliases = ()

    def __init__(self, name: str = "tracking", open_delay: float = 0,
                 count_delay: float = 0, write_delay: float = 0):
        self.name = name
        self.open_delay = open_delay
        self.count_delay = count_delay
        self.write_delay = write_delay
        self.opened: List[Connection] = []
        self.batch_written = asyncio.Event()
        self.active = 0
        self.peak = 0

    async def open(self, config, pool_size=1, timeout=None):
        await asyncio.sleep(self.open_delay)
        connection = await super().open(config, pool_size, timeout)
        self.opened.append(connection)
        return connection

    async def count_rows(self, conn, table_name):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.count_delay)
            return await super().count_rows(conn, table_name)
        finally:
            self.active -= 1

    async def write_batch(self, conn, table_name, descriptor, rows):
        written = await super().write_batch(conn, table_name, descriptor, rows)
        self.batch_written.set()
        await asyncio.sleep(self.write_delay)
        return written

def connector_config(path: str, db_type: str) -> ConnectionConfig:
    return ConnectionConfig(db_type=db_type, host="", port=0, user="", db_name=path)

def make_registry(*extra) -> DriverRegistry:
    return DriverRegistry([SQLiteConnector(), *extra])

async def open_sqlite(path: str, registry: Optional[DriverRegistry] = None,
                      config: Optional[ConnectionConfig] = None, pool_size: int = 4) -> Connection:
    manager = ConnectionManager(registry or make_registry())
    return await manager.validate(config or sqlite_config(path), pool_size=pool_size)
