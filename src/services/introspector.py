from typing import List
from src.connectors.base import Connection
from src.models.results import TableDescriptor

class SchemaIntrospector:
    """表结构与行数查询，结果不缓存(两次调用之间表结构可能变化)"""

    async def introspect(self, conn: Connection, table_name: str) -> TableDescriptor:
        """
        获取表的列信息

        Raises:
            SchemaError: 表不存在或元数据不可读
        """
        return await conn.connector.describe_table(conn, table_name)

    async def count(self, conn: Connection, table_name: str) -> int:
        """
        获取表的总行数

        Raises:
            QueryError: 查询失败(锁表、无权限等)
        """
        return await conn.connector.count_rows(conn, table_name)

    async def tables(self, conn: Connection) -> List[str]:
        return await conn.connector.list_tables(conn)
