import asyncio
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from functools import partial
import logging
from typing import ClassVar, TypeVar

from storage_gateway.config import GatewaySettings
from storage_gateway.enums import ExecutorName


logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_MAX_WORKERS = 8


class ServiceExecutorFactory:
    """
    Named thread pools for the blocking Docker and S3 SDK calls.

    Each pool is created on first use and lives until shutdown().
    """

    _executors: ClassVar[dict[str, ThreadPoolExecutor]] = {}
    _settings: ClassVar[GatewaySettings | None] = None

    @classmethod
    def initialize(cls, settings: GatewaySettings) -> None:
        cls._settings = settings

    @classmethod
    def get_executor(cls, name: ExecutorName | str) -> ThreadPoolExecutor:
        key = name.value if isinstance(name, ExecutorName) else name
        if key not in cls._executors:
            if cls._settings is None:
                max_workers = _DEFAULT_MAX_WORKERS
                logger.warning(
                    "ServiceExecutorFactory not initialized, using default max_workers=%s",
                    max_workers,
                )
            else:
                max_workers = cls._settings.io_worker_threads

            logger.info("Creating executor for %s with max_workers=%s", key, max_workers)
            cls._executors[key] = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix=f"{key}-io"
            )
        return cls._executors[key]

    @classmethod
    async def run_blocking(
        cls,
        name: ExecutorName | str,
        func: Callable[..., T],
        *args: object,
        **kwargs: object,
    ) -> T:
        """
        Run a blocking call in the named pool.

        Cancelling the awaiting task abandons the result; the worker thread
        finishes the call in the background.
        """
        loop = asyncio.get_running_loop()
        executor = cls.get_executor(name)
        return await loop.run_in_executor(executor, partial(func, *args, **kwargs))

    @classmethod
    def shutdown(cls) -> None:
        for name, executor in cls._executors.items():
            logger.info("Shutting down executor for %s", name)
            executor.shutdown(wait=False, cancel_futures=True)
        cls._executors.clear()
