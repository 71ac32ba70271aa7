from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import text
from sqlalchemy.engine import URL, Dialect
from sqlalchemy.engine import Connection as SAConnection
from src.connectors.base import BaseConnector, on_conflict_clause
from src.models.config import ConnectionConfig
from src.models.results import ColumnDescriptor, TableDescriptor

DEFAULT_PORT = 5432
DEFAULT_SCHEMA = "public"

class PostgreSQLConnector(BaseConnector):
    name = "postgres"
    label = "PostgreSQL"
    aliases = ("postgresql", "pg")
    driver_module = "psycopg2"

    def build_url(self, config: ConnectionConfig) -> URL:
        query = {}
        if config.ssl_mode:
            query["sslmode"] = config.ssl_mode
        return URL.create(
            "postgresql+psycopg2",
            username=config.user or None,
            password=config.password,
            host=config.host or "localhost",
            port=config.port or DEFAULT_PORT,
            database=config.db_name,
            query=query,
        )

    def connect_args(self, config: ConnectionConfig, timeout: Optional[float]) -> Dict[str, Any]:
        if timeout:
            return {"connect_timeout": max(1, int(timeout))}
        return {}

    def default_schema(self, config: ConnectionConfig) -> Optional[str]:
        return config.schema or DEFAULT_SCHEMA

    def _list_tables(self, conn: SAConnection, config: ConnectionConfig) -> List[str]:
        query = """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = :schema AND table_type = 'BASE TABLE'
        ORDER BY table_name
        """
        result = conn.execute(text(query), {"schema": self.default_schema(config)})
        return [row.table_name for row in result]

    def _describe(self, conn: SAConnection, config: ConnectionConfig, table_name: str) -> List[ColumnDescriptor]:
        query = """
        SELECT
            c.column_name,
            c.data_type,
            c.is_nullable,
            c.ordinal_position,
            c.is_identity,
            EXISTS (
                SELECT 1
                FROM information_schema.table_constraints tc
                JOIN information_schema.key_column_usage ku
                    ON tc.constraint_name = ku.constraint_name
                    AND tc.table_schema = ku.table_schema
                WHERE tc.constraint_type = 'PRIMARY KEY'
                    AND ku.table_schema = c.table_schema
                    AND ku.table_name = c.table_name
                    AND ku.column_name = c.column_name
            ) AS is_primary_key
        FROM
            information_schema.columns c
        WHERE
            c.table_schema = :schema
            AND c.table_name = :table
        ORDER BY
            c.ordinal_position
        """
        result = conn.execute(
            text(query),
            {"schema": self.default_schema(config), "table": table_name}
        )
        return [
            ColumnDescriptor(
                name=row.column_name,
                declared_type=row.data_type,
                nullable=row.is_nullable == "YES",
                ordinal=int(row.ordinal_position),
                is_primary=bool(row.is_primary_key),
                is_identity=row.is_identity == "YES",
            )
            for row in result
        ]

    def insert_sql(self, dialect: Dialect, table_ref: str, columns: Sequence[str],
                   descriptor: Optional[TableDescriptor] = None) -> str:
        sql = super().insert_sql(dialect, table_ref, columns, descriptor)
        # GENERATED ALWAYS 的标识列需要显式覆盖
        if descriptor is not None and any(
            col.is_identity and col.name in columns for col in descriptor.columns
        ):
            sql = sql.replace(") VALUES (", ") OVERRIDING SYSTEM VALUE VALUES (", 1)
        return sql

    def upsert_sql(self, dialect: Dialect, table_ref: str, columns: Sequence[str],
                   key: Sequence[str], descriptor: TableDescriptor) -> Optional[str]:
        return self.insert_sql(dialect, table_ref, columns, descriptor) + on_conflict_clause(dialect, columns, key)
