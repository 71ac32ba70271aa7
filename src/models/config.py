from typing import Any, Dict, Optional
from dataclasses import dataclass, field, asdict

PASSWORD_MASK = "******"

@dataclass(frozen=True)
class ConnectionConfig:
    """单个数据库端点的连接参数，仅在一次请求内有效"""
    db_type: str
    host: str
    port: int
    user: str
    db_name: str
    password: Optional[str] = field(default=None, repr=False)
    ssl_mode: Optional[str] = None
    schema: Optional[str] = None
    driver: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionConfig":
        """
        从请求字典构建连接配置

        Args:
            data: 包含 db_type/host/port/user/db_name 等字段的字典

        Raises:
            ValueError: 缺少必要字段或端口无效
        """
        if not isinstance(data, dict):
            raise ValueError("Connection config must be an object")
        missing = [key for key in ("db_type", "db_name") if not data.get(key)]
        if missing:
            raise ValueError(f"Missing required field(s): {', '.join(missing)}")

        port = data.get("port") or 0
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid port: {data.get('port')!r}")

        return cls(
            db_type=str(data["db_type"]).strip(),
            host=data.get("host") or "",
            port=port,
            user=data.get("user") or "",
            db_name=data["db_name"],
            password=data.get("password") or None,
            ssl_mode=data.get("ssl_mode") or None,
            schema=data.get("schema") or None,
            driver=data.get("driver") or None,
        )

    def to_dict(self, mask_password: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if mask_password and self.password:
            data["password"] = PASSWORD_MASK
        return data

    def describe(self) -> str:
        """用于日志的端点描述，不包含凭据"""
        if self.host:
            return f"{self.db_type}://{self.host}:{self.port}/{self.db_name}"
        return f"{self.db_type}:{self.db_name}"

@dataclass
class SyncSettings:
    """进程级参数，启动时确定，不随请求变化"""
    batch_size: int = 1000
    max_concurrent_tasks: int = 4
    connect_timeout: float = 10
    log_level: str = "INFO"
    log_file: str = "sync.log"
