import asyncio
import time
from typing import List, Optional, Sequence
from loguru import logger
from src.connectors.base import Connection
from src.models.errors import CancellationError, SyncError
from src.models.results import SyncResult, TableState
from src.services.introspector import SchemaIntrospector
from src.services.worker_pool import run_bounded
from src.utils.redact import scrub

# 每批读写的行数，进程级常量，不随请求变化
BATCH_SIZE = 1000
DEFAULT_MAX_WORKERS = 4

class SyncExecutor:
    """
    把表数据从源端分批写入目标端

    每张表独立执行：某张表失败只影响它自己的 SyncResult，不会取消其他表；
    没有跨表事务，也不做重试。
    """

    def __init__(self, introspector: Optional[SchemaIntrospector] = None,
                 batch_size: int = BATCH_SIZE, max_workers: int = DEFAULT_MAX_WORKERS):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.introspector = introspector or SchemaIntrospector()
        self.batch_size = batch_size
        self.max_workers = max_workers

    async def execute(self, source: Connection, target: Connection, table_names: Sequence[str],
                      cancel_event: Optional[asyncio.Event] = None) -> List[SyncResult]:
        """
        同步指定的表

        Args:
            source: 源端连接(本地)
            target: 目标端连接(远端)
            table_names: 要同步的表，结果顺序与之一致
            cancel_event: 协作式取消信号

        Returns:
            每张已开始处理的表一条 SyncResult
        """
        logger.info(f"开始同步 {len(table_names)} 张表，批次大小: {self.batch_size}, 并发数: {self.max_workers}")
        start_time = time.time()

        async def handle(table_name: str) -> SyncResult:
            return await self.sync_table(source, target, table_name, cancel_event)

        results = await run_bounded(table_names, handle, self.max_workers, cancel_event)

        total_duration = time.time() - start_time
        failed = [result.table_name for result in results if not result.success]
        total_rows = sum(result.synced_count for result in results)
        if failed:
            logger.error(f"同步结束，{len(failed)}/{len(results)} 张表失败: {', '.join(failed)}，"
                         f"共写入 {total_rows} 行，总耗时: {total_duration:.2f}秒")
        else:
            logger.success(f"所有表同步完成，共写入 {total_rows} 行，总耗时: {total_duration:.2f}秒")
        return results

    async def sync_table(self, source: Connection, target: Connection, table_name: str,
                         cancel_event: Optional[asyncio.Event] = None) -> SyncResult:
        """同步单个表，所有错误都转换为该表的 SyncResult"""
        result = SyncResult(table_name=table_name)
        state = TableState.PENDING
        table_start_time = time.time()
        try:
            state = self._advance(table_name, state, TableState.INTROSPECTING)
            descriptor = await self.introspector.introspect(source, table_name)
            target_descriptor = await self.introspector.introspect(target, table_name)

            state = self._advance(table_name, state, TableState.TRANSFERRING)
            offset = 0
            batch_num = 0
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise CancellationError(
                        f"Sync of table {table_name} cancelled after {result.synced_count} rows"
                    )

                rows = await source.connector.read_batch(source, table_name, descriptor, offset, self.batch_size)
                if not rows:
                    break

                batch_num += 1
                batch_start_time = time.time()
                written = await target.connector.write_batch(target, table_name, target_descriptor, rows)
                result.synced_count += written
                offset += len(rows)

                batch_duration = time.time() - batch_start_time
                rate = written / batch_duration if batch_duration > 0 else 0
                logger.debug(f"表 {table_name} 批次 {batch_num} 完成: {written} 行, "
                             f"耗时: {batch_duration:.2f}秒, 速率: {rate:.2f} 行/秒")

                if len(rows) < self.batch_size:
                    break

            state = self._advance(table_name, state, TableState.COMPLETED)
            result.success = True
            total_duration = time.time() - table_start_time
            logger.success(f"表 {table_name} 同步完成，总记录数: {result.synced_count}, "
                           f"批次数: {batch_num}, 总耗时: {total_duration:.2f}秒")
        except SyncError as e:
            self._fail(result, state, e.kind, str(e))
        except asyncio.CancelledError:
            self._fail(result, state, CancellationError.kind,
                       f"Sync of table {table_name} cancelled after {result.synced_count} rows")
            raise
        except Exception as e:
            message = scrub(scrub(f"{e.__class__.__name__}: {e}", source.config), target.config)
            self._fail(result, state, e.__class__.__name__, message)
        return result

    def _advance(self, table_name: str, current: TableState, new: TableState) -> TableState:
        logger.debug(f"表 {table_name}: {current.value} -> {new.value}")
        return new

    def _fail(self, result: SyncResult, state: TableState, kind: str, message: str) -> None:
        self._advance(result.table_name, state, TableState.FAILED)
        result.success = False
        result.error_kind = kind
        result.error_message = message
        logger.error(f"同步表 {result.table_name} 失败 (阶段: {state.value}, 已写入 {result.synced_count} 行): {message}")
