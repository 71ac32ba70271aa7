import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, Sequence, Tuple, TypeVar
from loguru import logger
from src.config.loader import load_default_config, load_settings
from src.connectors.base import Connection
from src.connectors.registry import DriverRegistry, registry as default_registry
from src.db.connection import ConnectionManager
from src.models.config import ConnectionConfig, SyncSettings
from src.models.errors import SyncError
from src.models.results import ConnectionTestResult, SyncResult, TableCompareResult
from src.services.comparator import TableComparator
from src.services.introspector import SchemaIntrospector
from src.services.sync import SyncExecutor

T = TypeVar("T")

class Orchestrator:
    """
    请求层调用的入口

    每次调用都重新建立连接，结束时(包括出错和取消)全部释放；
    同步方向固定为 本地 -> 远端。
    """

    def __init__(self, settings: Optional[SyncSettings] = None,
                 registry: Optional[DriverRegistry] = None):
        self.settings = settings or load_settings()
        self.registry = registry or default_registry
        self.connections = ConnectionManager(self.registry, connect_timeout=self.settings.connect_timeout)
        self.introspector = SchemaIntrospector()
        self.comparator = TableComparator(self.introspector, max_workers=self.settings.max_concurrent_tasks)
        self.executor = SyncExecutor(
            self.introspector,
            batch_size=self.settings.batch_size,
            max_workers=self.settings.max_concurrent_tasks,
        )

    def get_config(self) -> Dict[str, Any]:
        """进程默认的远端配置(来自环境变量)，密码已隐藏"""
        return load_default_config()

    async def test_connection(self, config: ConnectionConfig) -> ConnectionTestResult:
        try:
            await self.connections.test(config)
        except SyncError as e:
            logger.error(f"连接测试失败 {config.describe()}: {e}")
            return ConnectionTestResult(success=False, message=str(e), error_kind=e.kind)
        logger.success(f"连接测试成功: {config.describe()}")
        return ConnectionTestResult(success=True, message="连接成功")

    async def compare(self, local: ConnectionConfig, remote: ConnectionConfig,
                      tables: Optional[Sequence[str]] = None,
                      cancel_event: Optional[asyncio.Event] = None) -> List[TableCompareResult]:
        """
        对比两侧表的记录数

        Args:
            tables: 要对比的表；为空时取两侧都存在的表

        Raises:
            UnsupportedEngine, DBConnectionError: 连接建立失败(请求级错误)
            QueryError: 未指定表且无法列出表
        """
        cancel_event = cancel_event or asyncio.Event()
        async with self._open_pair(local, remote) as (local_conn, remote_conn):
            if tables is None:
                tables = await self._shared_tables(local_conn, remote_conn)
            return await self._drain_on_cancel(
                self.comparator.compare(local_conn, remote_conn, list(tables), cancel_event), cancel_event
            )

    async def execute(self, local: ConnectionConfig, remote: ConnectionConfig, tables: Sequence[str],
                      cancel_event: Optional[asyncio.Event] = None) -> List[SyncResult]:
        """
        把指定的表从本地同步到远端

        设置 cancel_event 或取消调用方任务时，进行中的表在当前批次提交后停止，
        以 CancellationError 和已写入行数出现在结果中。

        Raises:
            UnsupportedEngine, DBConnectionError: 连接建立失败(请求级错误)
        """
        if tables is None:
            raise ValueError("tables is required for execute")
        cancel_event = cancel_event or asyncio.Event()
        async with self._open_pair(local, remote) as (local_conn, remote_conn):
            return await self._drain_on_cancel(
                self.executor.execute(local_conn, remote_conn, list(tables), cancel_event), cancel_event
            )

    async def _shared_tables(self, local: Connection, remote: Connection) -> List[str]:
        local_tables, remote_tables = await asyncio.gather(
            self.introspector.tables(local),
            self.introspector.tables(remote),
        )
        remote_set = set(remote_tables)
        shared = sorted(name for name in local_tables if name in remote_set)
        logger.info(f"本地 {len(local_tables)} 张表, 远端 {len(remote_tables)} 张表, 共有 {len(shared)} 张")
        return shared

    async def _drain_on_cancel(self, operation: Awaitable[List[T]], cancel_event: asyncio.Event) -> List[T]:
        """
        运行对比/同步操作；外部取消时转为协作式取消

        已开始的表在当前批次结束后停止并返回各自的结果(含已写入行数)，
        未开始的表不出现在结果中。等待期间再次取消则直接中断。
        """
        task = asyncio.ensure_future(operation)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.done():
                raise
            logger.warning("收到取消请求，等待进行中的批次结束")
            cancel_event.set()
            return await task

    @asynccontextmanager
    async def _open_pair(self, local: ConnectionConfig,
                         remote: ConnectionConfig) -> AsyncIterator[Tuple[Connection, Connection]]:
        pool_size = self.settings.max_concurrent_tasks
        tasks = [
            asyncio.ensure_future(self.connections.validate(config, pool_size=pool_size))
            for config in (local, remote)
        ]
        try:
            opened = await asyncio.gather(*tasks, return_exceptions=True)
        except asyncio.CancelledError:
            # 已建立的一侧同样需要释放
            for task in tasks:
                if task.done() and not task.cancelled() and task.exception() is None:
                    self.connections.close(task.result())
            raise

        failures = [item for item in opened if isinstance(item, BaseException)]
        if failures:
            for item in opened:
                if isinstance(item, Connection):
                    self.connections.close(item)
            for side, item in zip(("local", "remote"), opened):
                if isinstance(item, BaseException):
                    logger.error(f"{side} 连接失败: {item}")
            raise failures[0]

        local_conn, remote_conn = opened
        try:
            yield local_conn, remote_conn
        finally:
            self.connections.close(local_conn)
            self.connections.close(remote_conn)
