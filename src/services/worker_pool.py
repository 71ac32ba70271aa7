import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar
from loguru import logger

T = TypeVar("T")
R = TypeVar("R")

async def run_bounded(items: Sequence[T],
                      handler: Callable[[T], Awaitable[R]],
                      max_workers: int,
                      cancel_event: Optional[asyncio.Event] = None) -> List[R]:
    """
    以有限数量的工作协程处理 items

    每个工作协程从任务队列取出 (序号, 项)，把 (序号, 结果) 放入结果队列；
    全部完成后按输入顺序返回结果。handler 需要自行把业务错误转换为结果。

    Args:
        items: 待处理项
        handler: 单项处理函数
        max_workers: 最大并发数
        cancel_event: 设置后不再领取新任务，尚未开始的项不出现在结果中

    Returns:
        已处理项的结果，顺序与输入一致
    """
    jobs: asyncio.Queue = asyncio.Queue()
    for index, item in enumerate(items):
        jobs.put_nowait((index, item))
    results: asyncio.Queue = asyncio.Queue()

    async def worker(worker_id: int) -> None:
        while not (cancel_event is not None and cancel_event.is_set()):
            try:
                index, item = jobs.get_nowait()
            except asyncio.QueueEmpty:
                return
            logger.debug(f"工作协程 {worker_id} 开始处理第 {index + 1} 项")
            results.put_nowait((index, await handler(item)))

    workers = [
        asyncio.create_task(worker(worker_id))
        for worker_id in range(1, min(max(1, max_workers), len(items)) + 1)
    ]
    try:
        await asyncio.gather(*workers)
    finally:
        for task in workers:
            if not task.done():
                task.cancel()

    collected: Dict[int, R] = {}
    while not results.empty():
        index, result = results.get_nowait()
        collected[index] = result
    skipped = len(items) - len(collected)
    if skipped:
        logger.warning(f"操作已取消，{skipped} 项未开始处理")
    return [collected[index] for index in sorted(collected)]
