from typing import Any, Dict, List, Optional, Sequence, Tuple
from sqlalchemy import text
from sqlalchemy.engine import URL, Dialect
from sqlalchemy.engine import Connection as SAConnection
from src.connectors.base import BaseConnector
from src.models.config import ConnectionConfig
from src.models.results import ColumnDescriptor, TableDescriptor

DEFAULT_PORT = 1433
DEFAULT_SCHEMA = "dbo"
DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"
# 不能出现在 ORDER BY 中的类型
UNSORTABLE_TYPES = frozenset({"text", "ntext", "image", "xml", "geography", "geometry"})

class SQLServerConnector(BaseConnector):
    name = "sqlserver"
    label = "SQL Server"
    aliases = ("mssql",)
    driver_module = "pyodbc"

    def build_url(self, config: ConnectionConfig) -> URL:
        query = {"driver": config.driver or DEFAULT_DRIVER}
        query.update(encrypt_options(config.ssl_mode))
        return URL.create(
            "mssql+pyodbc",
            username=config.user or None,
            password=config.password,
            host=config.host or "localhost",
            port=config.port or DEFAULT_PORT,
            database=config.db_name,
            query=query,
        )

    def connect_args(self, config: ConnectionConfig, timeout: Optional[float]) -> Dict[str, Any]:
        if timeout:
            # pyodbc 的 timeout 参数即登录超时
            return {"timeout": max(1, int(timeout))}
        return {}

    def engine_options(self, config: ConnectionConfig, pool_size: int) -> Dict[str, Any]:
        options = super().engine_options(config, pool_size)
        options["fast_executemany"] = True
        return options

    def default_schema(self, config: ConnectionConfig) -> Optional[str]:
        return config.schema or DEFAULT_SCHEMA

    def _list_tables(self, conn: SAConnection, config: ConnectionConfig) -> List[str]:
        query = """
        SELECT TABLE_NAME
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_SCHEMA = :schema AND TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
        """
        result = conn.execute(text(query), {"schema": self.default_schema(config)})
        return [row.TABLE_NAME for row in result]

    def _describe(self, conn: SAConnection, config: ConnectionConfig, table_name: str) -> List[ColumnDescriptor]:
        query = """
        SELECT
            c.COLUMN_NAME,
            c.DATA_TYPE,
            c.IS_NULLABLE,
            c.ORDINAL_POSITION,
            COLUMNPROPERTY(
                OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)),
                c.COLUMN_NAME, 'IsIdentity'
            ) AS IS_IDENTITY,
            CASE WHEN pk.COLUMN_NAME IS NOT NULL THEN 1 ELSE 0 END AS IS_PRIMARY_KEY
        FROM
            INFORMATION_SCHEMA.COLUMNS c
        LEFT JOIN (
            SELECT ku.TABLE_SCHEMA, ku.TABLE_NAME, ku.COLUMN_NAME
            FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
            JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE ku
                ON tc.CONSTRAINT_NAME = ku.CONSTRAINT_NAME
                AND tc.TABLE_SCHEMA = ku.TABLE_SCHEMA
            WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
        ) pk
            ON pk.TABLE_SCHEMA = c.TABLE_SCHEMA
            AND pk.TABLE_NAME = c.TABLE_NAME
            AND pk.COLUMN_NAME = c.COLUMN_NAME
        WHERE
            c.TABLE_SCHEMA = :schema
            AND c.TABLE_NAME = :table
        ORDER BY
            c.ORDINAL_POSITION
        """
        result = conn.execute(
            text(query),
            {"schema": self.default_schema(config), "table": table_name}
        )
        return [
            ColumnDescriptor(
                name=row.COLUMN_NAME,
                declared_type=row.DATA_TYPE.lower(),
                nullable=row.IS_NULLABLE == "YES",
                ordinal=int(row.ORDINAL_POSITION),
                is_primary=bool(row.IS_PRIMARY_KEY),
                is_identity=bool(row.IS_IDENTITY),
            )
            for row in result
        ]

    def order_clause(self, dialect: Dialect, descriptor: TableDescriptor) -> str:
        if descriptor.primary_key:
            return super().order_clause(dialect, descriptor)
        # 无主键时按所有可排序的列排序，保证分页稳定
        q = dialect.identifier_preparer.quote_identifier
        sortable = [col.name for col in descriptor.columns if col.declared_type not in UNSORTABLE_TYPES]
        if not sortable:
            return "(SELECT NULL)"
        return ", ".join(q(name) for name in sortable)

    def page_sql(self, dialect: Dialect, table_ref: str, descriptor: TableDescriptor) -> str:
        q = dialect.identifier_preparer.quote_identifier
        columns = ", ".join(q(name) for name in descriptor.column_names)
        return (
            f"SELECT {columns} FROM {table_ref} "
            f"ORDER BY {self.order_clause(dialect, descriptor)} "
            f"OFFSET :offset ROWS FETCH NEXT :limit ROWS ONLY"
        )

    def upsert_sql(self, dialect: Dialect, table_ref: str, columns: Sequence[str],
                   key: Sequence[str], descriptor: TableDescriptor) -> Optional[str]:
        q = dialect.identifier_preparer.quote_identifier
        identity = {col.name for col in descriptor.columns if col.is_identity}
        source = ", ".join(f":p{index} AS {q(name)}" for index, name in enumerate(columns))
        match = " AND ".join(f"tgt.{q(name)} = src.{q(name)}" for name in key)
        updates = [name for name in columns if name not in key and name not in identity]
        column_names = ", ".join(q(name) for name in columns)
        values = ", ".join(f"src.{q(name)}" for name in columns)

        sql = (
            f"MERGE INTO {table_ref} WITH (HOLDLOCK) AS tgt "
            f"USING (SELECT {source}) AS src ON {match} "
        )
        if updates:
            assignments = ", ".join(f"tgt.{q(name)} = src.{q(name)}" for name in updates)
            sql += f"WHEN MATCHED THEN UPDATE SET {assignments} "
        sql += f"WHEN NOT MATCHED THEN INSERT ({column_names}) VALUES ({values});"
        return sql

    def batch_statements(self, dialect: Dialect, table_ref: str, columns: Sequence[str],
                         descriptor: TableDescriptor) -> Tuple[List[str], List[str]]:
        if any(col.is_identity and col.name in columns for col in descriptor.columns):
            return [f"SET IDENTITY_INSERT {table_ref} ON"], [f"SET IDENTITY_INSERT {table_ref} OFF"]
        return [], []

def encrypt_options(ssl_mode: Optional[str]) -> Dict[str, str]:
    """ssl_mode 映射为 ODBC 的 Encrypt / TrustServerCertificate"""
    mode = (ssl_mode or "").strip().lower()
    if not mode:
        return {}
    if mode in ("disable", "disabled", "allow", "prefer"):
        return {"Encrypt": "no"}
    if mode in ("verify-ca", "verify-full"):
        return {"Encrypt": "yes", "TrustServerCertificate": "no"}
    return {"Encrypt": "yes", "TrustServerCertificate": "yes"}
