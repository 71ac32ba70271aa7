import asyncio
from typing import List, Optional, Sequence, Tuple
from loguru import logger
from src.connectors.base import Connection
from src.models.errors import SyncError
from src.models.results import COUNT_UNAVAILABLE, TableCompareResult
from src.services.introspector import SchemaIntrospector
from src.services.worker_pool import run_bounded
from src.utils.redact import scrub

DEFAULT_MAX_WORKERS = 4

class TableComparator:
    """并发对比本地与远端各表的记录数"""

    def __init__(self, introspector: Optional[SchemaIntrospector] = None,
                 max_workers: int = DEFAULT_MAX_WORKERS):
        self.introspector = introspector or SchemaIntrospector()
        self.max_workers = max_workers

    async def compare(self, local: Connection, remote: Connection, table_names: Sequence[str],
                      cancel_event: Optional[asyncio.Event] = None) -> List[TableCompareResult]:
        """
        对比每张表两侧的记录数

        Args:
            local: 本地连接
            remote: 远端连接
            table_names: 要对比的表，结果顺序与之一致

        Returns:
            每张表一条 TableCompareResult；某一侧计数失败时该侧为 COUNT_UNAVAILABLE
        """
        async def compare_table(table_name: str) -> TableCompareResult:
            (local_count, local_error), (remote_count, remote_error) = await asyncio.gather(
                self._count(local, table_name),
                self._count(remote, table_name),
            )
            errors = [f"{side}: {error}" for side, error in (("local", local_error), ("remote", remote_error)) if error]
            result = TableCompareResult(
                table_name=table_name,
                local_count=local_count,
                remote_count=remote_count,
                error_message="; ".join(errors),
            )
            if errors:
                logger.error(f"表 {table_name} 计数失败: {result.error_message}")
            elif result.diverged:
                logger.warning(f"表 {table_name} 记录数不一致: 本地 {local_count} 行, 远端 {remote_count} 行")
            else:
                logger.info(f"表 {table_name} 记录数一致: {local_count} 行")
            return result

        logger.info(f"开始对比 {len(table_names)} 张表，并发数: {self.max_workers}")
        return await run_bounded(table_names, compare_table, self.max_workers, cancel_event)

    async def _count(self, conn: Connection, table_name: str) -> Tuple[int, str]:
        try:
            return await self.introspector.count(conn, table_name), ""
        except SyncError as e:
            return COUNT_UNAVAILABLE, str(e)
        except Exception as e:
            return COUNT_UNAVAILABLE, scrub(f"{e.__class__.__name__}: {e}", conn.config)
