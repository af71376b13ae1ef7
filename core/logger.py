"""
Daily Forge 日志配置。

所有模块的 logger 都挂在 "daily_forge" 之下 (get_logger("day_sync") -> daily_forge.day_sync)，
setup_logging() 只配置这一棵树，不碰 root logger：

    system.log   加载/保存流水 (INFO+)
    error.log    保存失败、远端不可用 (ERROR+)
    stderr       需要人看的提示，如缓存写入失败、阅读计划过期 (WARNING+)

日志目录优先取 DAILY_FORGE_LOG_DIR，否则为 <project_root>/logs。
文件按大小轮转。
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "daily_forge"
LOG_DIR_ENV = "DAILY_FORGE_LOG_DIR"

MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def resolve_logs_dir(logs_dir: Optional[Path] = None) -> Path:
    if logs_dir is not None:
        return Path(logs_dir)
    raw = os.getenv(LOG_DIR_ENV, "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path(__file__).parent.parent / "logs"


def _rotating(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: int = logging.INFO,
    console_level: int = logging.WARNING,
    logs_dir: Optional[Path] = None
) -> logging.Logger:
    """
    初始化 daily_forge 日志树，可重复调用 (旧 handler 会被关闭替换)。

    Args:
        log_level: system.log 级别
        console_level: stderr 级别
        logs_dir: 日志目录，默认见 resolve_logs_dir()

    Returns:
        daily_forge logger
    """
    target_dir = resolve_logs_dir(logs_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # 由 handler 过滤

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    file_format = logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    logger.addHandler(_rotating(target_dir / "system.log", log_level, file_format))
    logger.addHandler(_rotating(target_dir / "error.log", logging.ERROR, file_format))

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """模块 logger，如 get_logger("remote_store")。"""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logging.getLogger(ROOT_LOGGER_NAME)
