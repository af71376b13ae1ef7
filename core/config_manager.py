"""
Configuration Manager for Daily Forge.

集中管理系统常量和配置参数。
所有经验值必须显式声明并可配置。

使用方式:
    from core.config_manager import config
    delay = config.SAVE_DEBOUNCE_SECONDS
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.exceptions import ConfigError


CONFIG_DIR = Path(__file__).parent.parent / "config"
RUNTIME_CONFIG_PATH = CONFIG_DIR / "runtime.yaml"

# 环境变量覆盖 (部署相关的值)
ENV_OVERRIDES = {
    "DAILY_FORGE_API_URL": "API_BASE_URL",
    "DAILY_FORGE_API_TOKEN": "API_TOKEN",
}


@dataclass
class SystemConfig:
    """
    系统运行时常量配置。

    所有值均为经验值，可根据实际情况调整。
    """

    # === 自动保存 ===

    # 防抖窗口 (秒)
    # 经验值依据：打字停顿 2 秒基本代表一段输入结束
    # 调整建议：网络差时可增至 5，减少请求数
    SAVE_DEBOUNCE_SECONDS: float = 2.0

    # === 远端存储 ===

    API_BASE_URL: str = "http://localhost:8010"

    # 可选的 Bearer token (由外部登录流程签发)
    API_TOKEN: Optional[str] = None

    # 单次请求超时 (秒)
    REMOTE_TIMEOUT_SECONDS: float = 10.0

    # 查找最新阅读计划时回溯的条目数
    # 经验值依据：30 条约覆盖一个月的日常记录
    LATEST_PLAN_LOOKBACK: int = 30

    # === 本地回退缓存 ===

    CACHE_KEY_PREFIX: str = "dailyForge_dayData_"

    # 阅读计划新鲜度窗口 (小时)，仅用于提示，不影响加载
    READING_PLAN_MAX_AGE_HOURS: int = 24


def _load_runtime_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """加载运行时配置覆盖（如果存在）。"""
    target = path or RUNTIME_CONFIG_PATH
    if not target.exists():
        return {}

    try:
        with open(target, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError):
        return {}

    if not isinstance(data, dict):
        return {}
    return data


def _coerce(key: str, value: Any, default: Any, source: Path) -> Any:
    """按默认值的类型转换 YAML 中的值 (如 "2" -> 2.0)。"""
    if default is None:
        return value
    if value is not None:
        try:
            return type(default)(value)
        except (TypeError, ValueError):
            pass
    raise ConfigError(f"{key} must be {type(default).__name__}, got {value!r}", str(source))


def _validate(cfg: SystemConfig, source: Optional[Path] = None) -> SystemConfig:
    if cfg.SAVE_DEBOUNCE_SECONDS < 0:
        raise ConfigError("SAVE_DEBOUNCE_SECONDS must be >= 0", str(source) if source else None)
    if cfg.REMOTE_TIMEOUT_SECONDS <= 0:
        raise ConfigError("REMOTE_TIMEOUT_SECONDS must be > 0", str(source) if source else None)
    if cfg.LATEST_PLAN_LOOKBACK < 1:
        raise ConfigError("LATEST_PLAN_LOOKBACK must be >= 1", str(source) if source else None)
    return cfg


def get_config(path: Optional[Path] = None) -> SystemConfig:
    """
    获取系统配置实例。

    优先级：环境变量 > runtime.yaml > 默认值
    """
    base = SystemConfig()
    overrides = _load_runtime_config(path)

    source = path or RUNTIME_CONFIG_PATH
    for key, value in overrides.items():
        if hasattr(base, key):
            setattr(base, key, _coerce(key, value, getattr(base, key), source))

    for env_name, attr in ENV_OVERRIDES.items():
        raw = os.getenv(env_name, "").strip()
        if raw:
            setattr(base, attr, raw)

    return _validate(base, source)


# 全局配置实例（单例模式）
config = get_config()
