import importlib.util
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional
from loguru import logger
from src.connectors.base import BaseConnector
from src.connectors.mysql import MySQLConnector
from src.connectors.sqlserver import SQLServerConnector
from src.connectors.postgresql import PostgreSQLConnector
from src.connectors.sqlite import SQLiteConnector
from src.models.errors import UnsupportedEngine

BUILTIN_CONNECTORS = (MySQLConnector, PostgreSQLConnector, SQLServerConnector, SQLiteConnector)

class DriverRegistry:
    """
    db_type 到连接器的只读映射

    进程启动时构建一次，之后不再修改；新增数据库类型只需要实现
    BaseConnector 并在 BUILTIN_CONNECTORS 中登记。
    """

    def __init__(self, connectors: Iterable[BaseConnector], missing: Optional[Mapping[str, str]] = None):
        lookup: Dict[str, BaseConnector] = {}
        for connector in connectors:
            for alias in (connector.name,) + tuple(connector.aliases):
                lookup[alias.lower()] = connector
        self._connectors = MappingProxyType(lookup)
        self._missing = MappingProxyType(dict(missing or {}))

    @classmethod
    def discover(cls) -> "DriverRegistry":
        """按已安装的驱动构建注册表，驱动缺失的数据库类型不可用"""
        available = []
        missing: Dict[str, str] = {}
        for connector_class in BUILTIN_CONNECTORS:
            connector = connector_class()
            if importlib.util.find_spec(connector.driver_module) is None:
                logger.warning(
                    f"Driver {connector.driver_module} not installed, {connector.label} support disabled"
                )
                for alias in (connector.name,) + tuple(connector.aliases):
                    missing[alias] = connector.driver_module
                continue
            available.append(connector)
        return cls(available, missing)

    def resolve(self, db_type: str) -> BaseConnector:
        """
        获取数据库类型对应的连接器

        Raises:
            UnsupportedEngine: 数据库类型未知或驱动未安装
        """
        key = (db_type or "").strip().lower()
        connector = self._connectors.get(key)
        if connector is not None:
            return connector
        if key in self._missing:
            raise UnsupportedEngine(
                f"Database type {db_type!r} requires driver {self._missing[key]!r}, which is not installed"
            )
        raise UnsupportedEngine(
            f"Unsupported database type: {db_type!r}. Supported: {', '.join(self.supported_types())}"
        )

    def supported_types(self) -> List[str]:
        return sorted({connector.name for connector in self._connectors.values()})

# 进程级注册表
registry = DriverRegistry.discover()
