from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import text
from sqlalchemy.engine import URL, Dialect
from sqlalchemy.engine import Connection as SAConnection
from src.connectors.base import BaseConnector, on_conflict_clause
from src.models.config import ConnectionConfig
from src.models.results import ColumnDescriptor, TableDescriptor

MEMORY = ":memory:"

class SQLiteConnector(BaseConnector):
    """SQLite 连接器，db_name 为数据库文件路径，host/port 被忽略"""
    name = "sqlite"
    label = "SQLite"
    aliases = ("sqlite3",)
    driver_module = "sqlite3"

    def build_url(self, config: ConnectionConfig) -> URL:
        if config.db_name == MEMORY:
            return URL.create("sqlite", database=MEMORY)
        # mode=rw: 文件不存在时报错，而不是创建一个空库
        return URL.create(
            "sqlite",
            database=f"file:{config.db_name}",
            query={"mode": "rw", "uri": "true"},
        )

    def connect_args(self, config: ConnectionConfig, timeout: Optional[float]) -> Dict[str, Any]:
        args: Dict[str, Any] = {"check_same_thread": False}
        if timeout:
            args["timeout"] = timeout
        return args

    def engine_options(self, config: ConnectionConfig, pool_size: int) -> Dict[str, Any]:
        if config.db_name == MEMORY:
            return {}
        return super().engine_options(config, pool_size)

    def default_schema(self, config: ConnectionConfig) -> Optional[str]:
        return None

    def _list_tables(self, conn: SAConnection, config: ConnectionConfig) -> List[str]:
        result = conn.execute(text(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ))
        return [row.name for row in result]

    def _describe(self, conn: SAConnection, config: ConnectionConfig, table_name: str) -> List[ColumnDescriptor]:
        quoted = conn.dialect.identifier_preparer.quote_identifier(table_name)
        result = conn.execute(text(f"PRAGMA table_info({quoted})"))
        return [
            ColumnDescriptor(
                name=row.name,
                declared_type=row.type or "",
                nullable=not row.notnull,
                ordinal=int(row.cid) + 1,
                is_primary=int(row.pk) > 0,
            )
            for row in result
        ]

    def upsert_sql(self, dialect: Dialect, table_ref: str, columns: Sequence[str],
                   key: Sequence[str], descriptor: TableDescriptor) -> Optional[str]:
        return self.insert_sql(dialect, table_ref, columns, descriptor) + on_conflict_clause(dialect, columns, key)
