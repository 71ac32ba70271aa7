import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from loguru import logger
from src.connectors.base import Connection
from src.connectors.registry import DriverRegistry, registry as default_registry
from src.models.config import ConnectionConfig
from src.models.errors import DBConnectionError

DEFAULT_CONNECT_TIMEOUT = 10

class ConnectionManager:
    """根据连接配置建立、校验并释放连接"""

    def __init__(self, registry: Optional[DriverRegistry] = None,
                 connect_timeout: float = DEFAULT_CONNECT_TIMEOUT):
        self.registry = registry or default_registry
        self.connect_timeout = connect_timeout

    async def validate(self, config: ConnectionConfig, pool_size: int = 1) -> Connection:
        """
        建立连接并执行探活查询

        Args:
            config: 连接配置
            pool_size: 连接池大小

        Returns:
            可用的 Connection，调用方负责 close

        Raises:
            UnsupportedEngine: 数据库类型不支持
            DBConnectionError: 认证失败、网络错误或超时
        """
        connector = self.registry.resolve(config.db_type)
        logger.debug(f"Connecting to {config.describe()} (timeout {self.connect_timeout}s)")
        try:
            return await asyncio.wait_for(
                connector.open(config, pool_size=pool_size, timeout=self.connect_timeout),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError:
            raise DBConnectionError(
                f"Timed out after {self.connect_timeout}s connecting to {config.describe()}"
            ) from None

    def close(self, connection: Optional[Connection]) -> None:
        if connection is not None and not connection.closed:
            connection.close()
            logger.debug(f"Disconnected from {connection.config.describe()}")

    @asynccontextmanager
    async def opened(self, config: ConnectionConfig, pool_size: int = 1) -> AsyncIterator[Connection]:
        connection = await self.validate(config, pool_size=pool_size)
        try:
            yield connection
        finally:
            self.close(connection)

    async def test(self, config: ConnectionConfig) -> None:
        """测试连接：成功即返回，不产生其他副作用"""
        async with self.opened(config):
            pass
