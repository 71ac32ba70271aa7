from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import text
from sqlalchemy.engine import URL, Dialect
from sqlalchemy.engine import Connection as SAConnection
from src.connectors.base import BaseConnector
from src.models.config import ConnectionConfig
from src.models.errors import DBConnectionError
from src.models.results import ColumnDescriptor, TableDescriptor

DEFAULT_PORT = 3306

class MySQLConnector(BaseConnector):
    name = "mysql"
    label = "MySQL"
    aliases = ("mariadb",)
    driver_module = "pymysql"

    def build_url(self, config: ConnectionConfig) -> URL:
        return URL.create(
            "mysql+pymysql",
            username=config.user or None,
            password=config.password,
            host=config.host or "localhost",
            port=config.port or DEFAULT_PORT,
            database=config.db_name,
            query={"charset": "utf8mb4"},
        )

    def connect_args(self, config: ConnectionConfig, timeout: Optional[float]) -> Dict[str, Any]:
        args: Dict[str, Any] = {}
        if timeout:
            args["connect_timeout"] = max(1, int(timeout))
        args.update(ssl_args(config.ssl_mode))
        return args

    def _list_tables(self, conn: SAConnection, config: ConnectionConfig) -> List[str]:
        query = """
        SELECT TABLE_NAME
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_SCHEMA = :database AND TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
        """
        result = conn.execute(text(query), {"database": config.schema or config.db_name})
        return [row.TABLE_NAME for row in result]

    def _describe(self, conn: SAConnection, config: ConnectionConfig, table_name: str) -> List[ColumnDescriptor]:
        query = """
        SELECT COLUMN_NAME, COLUMN_TYPE, IS_NULLABLE, COLUMN_KEY, EXTRA, ORDINAL_POSITION
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_SCHEMA = :database AND TABLE_NAME = :table
        ORDER BY ORDINAL_POSITION
        """
        result = conn.execute(
            text(query),
            {"database": config.schema or config.db_name, "table": table_name}
        )
        return [
            ColumnDescriptor(
                name=row.COLUMN_NAME,
                declared_type=str(row.COLUMN_TYPE),
                nullable=row.IS_NULLABLE == "YES",
                ordinal=int(row.ORDINAL_POSITION),
                is_primary=row.COLUMN_KEY == "PRI",
                is_identity="auto_increment" in (row.EXTRA or "").lower(),
            )
            for row in result
        ]

    def upsert_sql(self, dialect: Dialect, table_ref: str, columns: Sequence[str],
                   key: Sequence[str], descriptor: TableDescriptor) -> Optional[str]:
        q = dialect.identifier_preparer.quote_identifier
        updates = [name for name in columns if name not in key] or [key[0]]
        # VALUES() 写法在 MySQL 8.0.20 之后弃用但仍可用；行别名写法 MariaDB 不支持
        assignments = ", ".join(f"{q(name)} = VALUES({q(name)})" for name in updates)
        return f"{self.insert_sql(dialect, table_ref, columns, descriptor)} ON DUPLICATE KEY UPDATE {assignments}"

def ssl_args(ssl_mode: Optional[str]) -> Dict[str, Any]:
    """把 libpq 风格的 ssl_mode 映射为 PyMySQL 参数"""
    mode = (ssl_mode or "").strip().lower().replace("_", "-")
    if mode in ("", "prefer", "preferred", "allow"):
        return {}
    if mode in ("disable", "disabled"):
        return {"ssl_disabled": True}
    if mode in ("require", "required"):
        return {"ssl": {"check_hostname": False, "verify_mode": "none"}}
    if mode == "verify-ca":
        return {"ssl_verify_cert": True}
    if mode in ("verify-full", "verify-identity"):
        return {"ssl_verify_cert": True, "ssl_verify_identity": True}
    raise DBConnectionError(f"Unsupported ssl_mode for MySQL: {ssl_mode}")
