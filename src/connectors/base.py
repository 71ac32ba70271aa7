import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, URL, Dialect
from sqlalchemy.engine import Connection as SAConnection
from sqlalchemy.exc import SQLAlchemyError
from loguru import logger
from src.models.config import ConnectionConfig
from src.models.errors import DBConnectionError, QueryError, SchemaError, WriteError
from src.models.results import ColumnDescriptor, TableDescriptor
from src.utils.redact import describe_error

Row = Dict[str, Any]

@dataclass
class Connection:
    """一个端点的连接句柄，持有 SQLAlchemy 引擎(连接池)"""
    config: ConnectionConfig
    connector: "BaseConnector"
    engine: Engine
    closed: bool = False

    @property
    def dialect(self) -> Dialect:
        return self.engine.dialect

    def close(self) -> None:
        if not self.closed:
            self.engine.dispose()
            self.closed = True

class BaseConnector(ABC):
    """
    数据库连接器的能力集合

    连接器本身无状态，所有状态都在 Connection 中；阻塞的数据库调用
    通过 asyncio.to_thread 放到线程中执行。
    """
    name: str = ""
    label: str = ""
    aliases: Tuple[str, ...] = ()
    driver_module: str = ""

    @abstractmethod
    def build_url(self, config: ConnectionConfig) -> URL:
        """构建 SQLAlchemy 连接 URL"""
        pass

    @abstractmethod
    def _list_tables(self, conn: SAConnection, config: ConnectionConfig) -> List[str]:
        """列出当前库(schema)中的基础表"""
        pass

    @abstractmethod
    def _describe(self, conn: SAConnection, config: ConnectionConfig, table_name: str) -> List[ColumnDescriptor]:
        """读取列信息，表不存在时返回空列表"""
        pass

    def connect_args(self, config: ConnectionConfig, timeout: Optional[float]) -> Dict[str, Any]:
        return {}

    def engine_options(self, config: ConnectionConfig, pool_size: int) -> Dict[str, Any]:
        return {"pool_size": pool_size, "max_overflow": 0, "pool_pre_ping": True}

    def default_schema(self, config: ConnectionConfig) -> Optional[str]:
        return config.schema

    # ---- SQL 构建 -------------------------------------------------------

    def table_ref(self, dialect: Dialect, table_name: str, schema: Optional[str] = None) -> str:
        preparer = dialect.identifier_preparer
        quoted = preparer.quote_identifier(table_name)
        if schema:
            return f"{preparer.quote_identifier(schema)}.{quoted}"
        return quoted

    def order_clause(self, dialect: Dialect, descriptor: TableDescriptor) -> str:
        q = dialect.identifier_preparer.quote_identifier
        keys = descriptor.primary_key or descriptor.column_names
        return ", ".join(q(name) for name in keys)

    def page_sql(self, dialect: Dialect, table_ref: str, descriptor: TableDescriptor) -> str:
        q = dialect.identifier_preparer.quote_identifier
        columns = ", ".join(q(name) for name in descriptor.column_names)
        return (
            f"SELECT {columns} FROM {table_ref} "
            f"ORDER BY {self.order_clause(dialect, descriptor)} "
            f"LIMIT :limit OFFSET :offset"
        )

    def insert_sql(self, dialect: Dialect, table_ref: str, columns: Sequence[str],
                   descriptor: Optional[TableDescriptor] = None) -> str:
        q = dialect.identifier_preparer.quote_identifier
        column_names = ", ".join(q(name) for name in columns)
        return f"INSERT INTO {table_ref} ({column_names}) VALUES ({placeholders(columns)})"

    def upsert_sql(self, dialect: Dialect, table_ref: str, columns: Sequence[str],
                   key: Sequence[str], descriptor: TableDescriptor) -> Optional[str]:
        """引擎原生的 upsert 语句；返回 None 表示不支持，使用普通 INSERT"""
        return None

    def write_sql(self, dialect: Dialect, table_ref: str, columns: Sequence[str],
                  descriptor: TableDescriptor) -> str:
        key = descriptor.primary_key
        if key and all(name in columns for name in key):
            sql = self.upsert_sql(dialect, table_ref, columns, key, descriptor)
            if sql:
                return sql
        return self.insert_sql(dialect, table_ref, columns, descriptor)

    def batch_statements(self, dialect: Dialect, table_ref: str, columns: Sequence[str],
                         descriptor: TableDescriptor) -> Tuple[List[str], List[str]]:
        """批次写入前后需要在同一连接上执行的语句"""
        return [], []

    # ---- 能力集合 -------------------------------------------------------

    async def open(self, config: ConnectionConfig, pool_size: int = 1,
                   timeout: Optional[float] = None) -> Connection:
        """
        建立连接并做一次探活

        Args:
            config: 连接配置
            pool_size: 连接池大小，与并发工作数一致
            timeout: 连接超时(秒)

        Raises:
            DBConnectionError: 无法建立连接
        """
        try:
            engine = create_engine(
                self.build_url(config),
                connect_args=self.connect_args(config, timeout),
                hide_parameters=True,
                **self.engine_options(config, pool_size)
            )
        except (SQLAlchemyError, ImportError, ValueError) as e:
            raise DBConnectionError(
                f"Invalid {self.label} connection settings: {describe_error(e, config)}"
            ) from None

        connection = Connection(config=config, connector=self, engine=engine)
        try:
            await self.ping(connection)
        except BaseException:
            connection.close()
            raise
        logger.info(f"Successfully connected to {self.label} database: {config.describe()}")
        return connection

    async def ping(self, conn: Connection) -> None:
        try:
            await self._run(self._scalar, conn, "SELECT 1")
        except SQLAlchemyError as e:
            raise DBConnectionError(
                f"Failed to connect to {self.label} database {conn.config.describe()}: "
                f"{describe_error(e, conn.config)}"
            ) from None

    async def list_tables(self, conn: Connection) -> List[str]:
        try:
            return await self._run(self._with_connection, conn, self._list_tables)
        except SQLAlchemyError as e:
            raise QueryError(
                f"Failed to list tables of {conn.config.describe()}: {describe_error(e, conn.config)}"
            ) from e

    async def count_rows(self, conn: Connection, table_name: str) -> int:
        sql = f"SELECT COUNT(*) FROM {self._ref(conn, table_name)}"
        try:
            count = await self._run(self._scalar, conn, sql)
        except SQLAlchemyError as e:
            raise QueryError(
                f"Failed to count rows of table {table_name}: {describe_error(e, conn.config)}"
            ) from e
        logger.debug(f"Table {table_name} has {count} rows ({conn.config.describe()})")
        return int(count or 0)

    async def describe_table(self, conn: Connection, table_name: str) -> TableDescriptor:
        try:
            columns = await self._run(self._with_connection, conn, self._describe, table_name)
        except SQLAlchemyError as e:
            raise SchemaError(
                f"Failed to get schema for table {table_name}: {describe_error(e, conn.config)}"
            ) from e
        if not columns:
            raise SchemaError(f"Table {table_name} does not exist in {conn.config.describe()}")
        return TableDescriptor(table_name=table_name, columns=tuple(columns))

    async def read_batch(self, conn: Connection, table_name: str, descriptor: TableDescriptor,
                         offset: int, limit: int) -> List[Row]:
        sql = self.page_sql(conn.dialect, self._ref(conn, table_name), descriptor)
        try:
            return await self._run(self._fetch_all, conn, sql, {"offset": offset, "limit": limit})
        except SQLAlchemyError as e:
            raise QueryError(
                f"Failed to read data from table {table_name} at offset {offset}: "
                f"{describe_error(e, conn.config)}"
            ) from e

    async def write_batch(self, conn: Connection, table_name: str, descriptor: TableDescriptor,
                          rows: List[Row]) -> int:
        """写入一个批次，整批一个事务，返回已提交的行数"""
        if not rows:
            return 0

        columns = [name for name in descriptor.column_names if name in rows[0]]
        if not columns:
            raise WriteError(f"No matching columns between source rows and target table {table_name}")

        dialect = conn.dialect
        ref = self._ref(conn, table_name)
        sql = self.write_sql(dialect, ref, columns, descriptor)
        before, after = self.batch_statements(dialect, ref, columns, descriptor)
        params = [
            {f"p{index}": row.get(name) for index, name in enumerate(columns)}
            for row in rows
        ]
        try:
            await self._run(self._execute_batch, conn, sql, params, before, after)
        except SQLAlchemyError as e:
            raise WriteError(
                f"Failed to write data to table {table_name}: {describe_error(e, conn.config)}"
            ) from e
        return len(rows)

    # ---- 同步辅助方法(在线程中执行) ---------------------------------------

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(func, *args)

    def _ref(self, conn: Connection, table_name: str) -> str:
        return self.table_ref(conn.dialect, table_name, self.default_schema(conn.config))

    def _with_connection(self, conn: Connection, func: Callable[..., Any], *args: Any) -> Any:
        with conn.engine.connect() as sa_conn:
            return func(sa_conn, conn.config, *args)

    def _scalar(self, conn: Connection, sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
        with conn.engine.connect() as sa_conn:
            return sa_conn.execute(text(sql), params or {}).scalar()

    def _fetch_all(self, conn: Connection, sql: str, params: Dict[str, Any]) -> List[Row]:
        with conn.engine.connect() as sa_conn:
            result = sa_conn.execute(text(sql), params)
            return [dict(row._mapping) for row in result]

    def _execute_batch(self, conn: Connection, sql: str, params: List[Dict[str, Any]],
                       before: List[str], after: List[str]) -> None:
        with conn.engine.connect() as sa_conn:
            for statement in before:
                sa_conn.execute(text(statement))
            try:
                sa_conn.execute(text(sql), params)
                sa_conn.commit()
            except SQLAlchemyError:
                sa_conn.rollback()
                raise
            finally:
                for statement in after:
                    sa_conn.execute(text(statement))
                    sa_conn.commit()

def placeholders(columns: Sequence[str]) -> str:
    return ", ".join(f":p{index}" for index in range(len(columns)))

def on_conflict_clause(dialect: Dialect, columns: Sequence[str], key: Sequence[str]) -> str:
    """PostgreSQL / SQLite 共用的 ON CONFLICT 子句"""
    q = dialect.identifier_preparer.quote_identifier
    conflict = ", ".join(q(name) for name in key)
    updates = [name for name in columns if name not in key]
    if not updates:
        return f" ON CONFLICT ({conflict}) DO NOTHING"
    assignments = ", ".join(f"{q(name)} = EXCLUDED.{q(name)}" for name in updates)
    return f" ON CONFLICT ({conflict}) DO UPDATE SET {assignments}"
