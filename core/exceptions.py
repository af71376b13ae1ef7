"""
Daily Forge 异常定义模块。

定义系统中自定义异常的层次结构：
- ForgeError: 基类，所有已知错误
- ConfigError: 配置文件错误
- RemoteUnavailableError: 远端存储不可用 (网络/超时/非 2xx)
- CacheWriteError: 本地回退缓存写入失败
"""
from typing import Optional


class ForgeError(Exception):
    """Daily Forge 基础异常类。

    所有系统内已知错误都继承自此类。
    捕获此类可以处理所有预期的错误情况。
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        """
        Args:
            message: 错误描述
            hint: 对用户的操作建议
        """
        super().__init__(message)
        self.message = message
        self.hint = hint

    def get_user_message(self) -> str:
        """返回用户友好的错误消息。"""
        if self.hint:
            return f"{self.message}\n💡 Hint: {self.hint}"
        return self.message


class ConfigError(ForgeError):
    """配置文件错误。

    当配置文件格式错误或内容非法时抛出。
    """

    def __init__(self, message: str, config_path: Optional[str] = None):
        hint = f"Check the config file: {config_path}" if config_path else "Check the config file format"
        super().__init__(message, hint)
        self.config_path = config_path


class RemoteUnavailableError(ForgeError):
    """远端存储不可用。

    网络错误、超时或非 2xx 响应时抛出。
    RemoteStore 在自身边界把它转换为 failed 结果，不会继续向上传播。
    """

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        self.endpoint = endpoint
        self.status_code = status_code

        context = f"[{endpoint}]" if endpoint else "[remote]"
        if status_code is not None:
            context = f"{context} HTTP {status_code}"

        super().__init__(f"{context} {message}", hint="Changes are kept locally; they will be retried on the next edit")


class CacheWriteError(ForgeError):
    """本地回退缓存写入失败。

    存储配额、序列化或文件系统错误时抛出。非致命：内存中的记录保持正确。
    """

    def __init__(self, message: str, cache_key: Optional[str] = None):
        super().__init__(message, hint="Local backup skipped; the in-memory entry is unaffected")
        self.cache_key = cache_key
