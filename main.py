import asyncio
import json
import signal
import sys
from typing import Any, Dict, List, Optional
from loguru import logger
from src.config.loader import load_request, load_settings
from src.models.config import SyncSettings
from src.models.errors import SyncError
from src.services.orchestrator import Orchestrator

COMMANDS = ("config", "test", "compare", "execute")

def setup_logger(settings: SyncSettings) -> None:
    # 移除默认的处理器
    logger.remove()

    # 添加文件处理器
    logger.add(
        settings.log_file,
        rotation="500 MB",
        level=settings.log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )

    # 添加控制台处理器，标准输出留给结果 JSON
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <level>{message}</level>"
    )

def parse_args(argv: List[str]) -> Dict[str, str]:
    """解析 key=value 形式的命令行参数"""
    args = {}
    for arg in argv:
        if "=" not in arg:
            raise ValueError(f"Invalid argument: {arg} (expected key=value)")
        key, value = arg.split("=", 1)
        # 去除可能存在的引号
        args[key.strip()] = value.strip("'\"")

    command = args.get("command", "")
    if command not in COMMANDS:
        raise ValueError(f"Missing or invalid argument: command=<{'|'.join(COMMANDS)}>")
    if command != "config" and not args.get("config"):
        raise ValueError("Missing required argument: config=<path_to_config_file>")

    logger.debug(f"Parsed arguments: command={command}, config={args.get('config')}")
    return args

def envelope(data: Any = None, message: str = "", code: int = 0) -> Dict[str, Any]:
    body: Dict[str, Any] = {"code": code}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body

async def run(args: Dict[str, str], orchestrator: Optional[Orchestrator] = None,
              cancel_event: Optional[asyncio.Event] = None) -> Dict[str, Any]:
    orchestrator = orchestrator or Orchestrator()
    command = args["command"]

    if command == "config":
        return envelope(orchestrator.get_config())

    request = load_request(args["config"])
    if args.get("tables"):
        request.tables = [name.strip() for name in args["tables"].split(",") if name.strip()]

    if command == "test":
        result = await orchestrator.test_connection(request.remote)
        if result.success:
            return envelope(message=result.message)
        return envelope({"error_kind": result.error_kind}, message=result.message, code=1)

    if command == "compare":
        results = await orchestrator.compare(request.local, request.remote, request.tables, cancel_event)
        return envelope([result.to_dict() for result in results])

    if not request.tables:
        raise ValueError("execute requires a table list (\"tables\" in config or tables=a,b)")
    results = await orchestrator.execute(request.local, request.remote, request.tables, cancel_event)
    if cancel_event is not None and cancel_event.is_set():
        return envelope([result.to_dict() for result in results], message="同步已取消", code=1)
    return envelope([result.to_dict() for result in results], message="同步完成")

def install_cancel_handler(cancel_event: asyncio.Event) -> None:
    """Ctrl-C / SIGTERM 只设置取消信号，进行中的表在当前批次结束后停止"""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows 的事件循环不支持，保留默认的中断行为
            logger.debug(f"Signal handler for {sig.name} not supported on this platform")

async def main() -> int:
    settings = load_settings()
    setup_logger(settings)
    try:
        args = parse_args(sys.argv[1:])
        cancel_event = asyncio.Event()
        install_cancel_handler(cancel_event)
        body = await run(args, Orchestrator(settings), cancel_event)
    except (SyncError, ValueError, FileNotFoundError) as e:
        logger.error(f"Sync failed: {str(e)}")
        body = envelope(message=str(e), code=1)

    print(json.dumps(body, ensure_ascii=False, indent=2, default=str))
    return body["code"]

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
