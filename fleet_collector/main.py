"""
主程序入口

启动并发任务：
1. REST API 服务
2. 离线状态巡检（可选，liveness.sweep_interval_seconds > 0 时启用）
"""

import asyncio
import logging
import os
import sys
from datetime import timedelta
from pathlib import Path

import uvicorn

from . import __version__
from .config import get_config
from .service import FleetService
from .storage import get_store


def setup_logging():
    """配置日志"""
    config = get_config()

    # 日志格式
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # 获取日志级别
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    # 配置根日志
    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # 如果配置了文件日志
    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def acquire_single_instance_lock(lock_path: Path):
    """
    防止同一个 SQLite 文件被多个 Collector 实例同时写入。

    通过文件锁实现：同一路径下只能有一个进程持锁。
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    handle = open(lock_path, "a+b")

    try:
        if os.name == "nt":
            import msvcrt  # type: ignore

            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            import fcntl  # type: ignore

            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as e:
        handle.close()
        raise RuntimeError(f"Another Fleet Collector instance is already running (lock: {lock_path})") from e

    handle.seek(0)
    handle.truncate()
    handle.write(str(os.getpid()).encode("utf-8"))
    handle.flush()
    return handle


async def run_sweeper(service: FleetService, interval: float):
    """
    周期性离线巡检

    读取路径本身已会修正状态，这里只是让存储中的状态及时落盘。
    """
    logger = logging.getLogger(__name__)
    logger.info(f"Liveness sweeper started, interval={interval}s")

    while True:
        await asyncio.sleep(interval)
        try:
            count = await service.sweep()
            if count:
                logger.info(f"Sweep marked {count} PC(s) offline")
        except Exception as e:
            logger.error(f"Sweep failed: {e}", exc_info=True)


async def run_api_server():
    """运行 API 服务器"""
    from .api.app import create_app

    config = get_config()
    app = create_app()

    server_config = uvicorn.Config(
        app=app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
        access_log=False
    )
    server = uvicorn.Server(server_config)
    await server.serve()


async def main():
    """主函数：启动所有任务"""
    logger = logging.getLogger(__name__)

    # 设置日志
    setup_logging()
    logger.info("=" * 60)
    logger.info(f"Fleet Collector v{__version__}")
    logger.info("=" * 60)

    # 加载配置
    config = get_config()
    logger.info(f"Config loaded: API={config.api.host}:{config.api.port}")
    logger.info(f"Storage backend: {config.database.backend}")
    logger.info(f"Offline threshold: {config.liveness.offline_after_seconds}s")

    # 单实例锁：仅 SQLite 需要
    lock_handle = None
    if config.database.backend == "sqlite":
        try:
            db_path = Path(config.database.path)
            lock_handle = acquire_single_instance_lock(db_path.parent / "fleet-collector.lock")
        except RuntimeError as e:
            logger.error(str(e))
            return
        logger.info(f"Database: {config.database.path}")

    store = get_store()
    tasks = [run_api_server()]
    if config.liveness.sweep_interval_seconds > 0:
        service = FleetService(
            store,
            offline_after=timedelta(seconds=config.liveness.offline_after_seconds),
            unique_names=config.registration.unique_names,
        )
        tasks.append(run_sweeper(service, config.liveness.sweep_interval_seconds))

    logger.info("Starting concurrent tasks...")

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Tasks cancelled, shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        raise
    finally:
        if lock_handle is not None:
            lock_handle.close()


def cli():
    """命令行入口"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
