import json
import os
from typing import Any, Dict, List, Mapping, Optional
from dataclasses import dataclass, field
from loguru import logger
from src.models.config import ConnectionConfig, SyncSettings, PASSWORD_MASK

DEFAULT_REMOTE_PORT = 5432

@dataclass
class SyncRequest:
    """一次同步请求：本地/远端配置与要处理的表"""
    local: ConnectionConfig
    remote: ConnectionConfig
    tables: Optional[List[str]] = field(default=None)

def _env(environ: Mapping[str, str], key: str, default: str = "") -> str:
    return environ.get(key, default).strip()

def _int_env(environ: Mapping[str, str], key: str, default: int) -> int:
    value = _env(environ, key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"环境变量 {key} 必须是整数: {value!r}")

def load_settings(environ: Optional[Mapping[str, str]] = None) -> SyncSettings:
    """从环境变量读取进程级参数，未设置时使用默认值"""
    environ = os.environ if environ is None else environ
    defaults = SyncSettings()
    settings = SyncSettings(
        batch_size=_int_env(environ, "SYNC_BATCH_SIZE", defaults.batch_size),
        max_concurrent_tasks=_int_env(environ, "SYNC_MAX_CONCURRENT_TASKS", defaults.max_concurrent_tasks),
        connect_timeout=_int_env(environ, "SYNC_CONNECT_TIMEOUT", int(defaults.connect_timeout)),
        log_level=_env(environ, "LOG_LEVEL", defaults.log_level).upper(),
        log_file=_env(environ, "LOG_FILE", defaults.log_file),
    )
    if settings.batch_size <= 0 or settings.max_concurrent_tasks <= 0 or settings.connect_timeout <= 0:
        raise ValueError("SYNC_BATCH_SIZE, SYNC_MAX_CONCURRENT_TASKS and SYNC_CONNECT_TIMEOUT must be positive")
    logger.debug(f"batch_size: {settings.batch_size}, max_concurrent_tasks: {settings.max_concurrent_tasks}, "
                 f"connect_timeout: {settings.connect_timeout}")
    return settings

def load_default_config(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    读取默认远端配置 (SYNC_DB_*)

    Returns:
        配置字典，端口未设置时为 5432，密码已隐藏
    """
    environ = os.environ if environ is None else environ
    port = _env(environ, "SYNC_DB_PORT")
    password = _env(environ, "SYNC_DB_PASSWORD")
    return {
        "db_type": _env(environ, "SYNC_DB_TYPE"),
        "host": _env(environ, "SYNC_DB_HOST"),
        "port": int(port) if port.isdigit() and int(port) else DEFAULT_REMOTE_PORT,
        "user": _env(environ, "SYNC_DB_USER"),
        "password": PASSWORD_MASK if password else "",
        "db_name": _env(environ, "SYNC_DB_NAME"),
        "ssl_mode": _env(environ, "SYNC_SSL_MODE"),
    }

def load_local_config(environ: Optional[Mapping[str, str]] = None) -> ConnectionConfig:
    """读取本地数据库配置 (LOCAL_DB_*)，默认为当前目录下的 SQLite 文件"""
    environ = os.environ if environ is None else environ
    return ConnectionConfig.from_dict({
        "db_type": _env(environ, "LOCAL_DB_TYPE", "sqlite"),
        "host": _env(environ, "LOCAL_DB_HOST"),
        "port": _int_env(environ, "LOCAL_DB_PORT", 0),
        "user": _env(environ, "LOCAL_DB_USER"),
        "password": _env(environ, "LOCAL_DB_PASSWORD"),
        "db_name": _env(environ, "LOCAL_DB_NAME", "data.db"),
        "ssl_mode": _env(environ, "LOCAL_SSL_MODE"),
    })

def parse_request(data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> SyncRequest:
    """
    解析请求字典

    Args:
        data: {"local": {...}?, "remote": {...}, "tables": [...]?}

    Raises:
        ValueError: 配置内容无效
    """
    if "remote" not in data:
        raise ValueError("配置缺少必要字段: 'remote'")
    remote = ConnectionConfig.from_dict(data["remote"])
    local = ConnectionConfig.from_dict(data["local"]) if data.get("local") else load_local_config(environ)

    tables = data.get("tables")
    if tables is not None:
        if not isinstance(tables, list) or not all(isinstance(name, str) and name for name in tables):
            raise ValueError("'tables' 必须是表名字符串列表")
    return SyncRequest(local=local, remote=remote, tables=tables)

def load_request(config_path: str, environ: Optional[Mapping[str, str]] = None) -> SyncRequest:
    """
    从JSON文件加载同步请求

    Args:
        config_path: 配置文件路径

    Returns:
        SyncRequest对象

    Raises:
        FileNotFoundError: 配置文件不存在
        ValueError: 配置内容无效
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"配置文件不存在: {config_path}")
    except json.JSONDecodeError as e:
        raise ValueError(f"配置文件JSON格式错误: {str(e)}")

    if not isinstance(data, dict):
        raise ValueError("配置文件内容必须是JSON对象")
    return parse_request(data, environ)
