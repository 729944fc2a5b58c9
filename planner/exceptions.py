"""
Proactive Planner 异常定义模块。

定义系统中所有自定义异常的层次结构：
- PlannerError: 基类，所有已知错误
- ConfigError: 配置文件错误
- StateError: 持久化状态相关错误
- ResponderError: AI 对话服务 (friend / coach) 调用相关错误

缺失引用 (trigger id、过期会话) 与非法日期不会抛出异常，按静默处理。
"""
from typing import Optional


class PlannerError(Exception):
    """Proactive Planner 基础异常类。

    所有系统内已知错误都继承自此类。
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


class ConfigError(PlannerError):
    """配置文件错误。

    当触发器配置缺失、格式错误或内容非法时抛出。
    """

    def __init__(self, message: str, config_path: Optional[str] = None):
        hint = f"Check the config file: {config_path}" if config_path else "Check the config file format"
        super().__init__(message, hint)
        self.config_path = config_path


class StateError(PlannerError):
    """持久化状态无法解析时抛出。"""

    def __init__(self, message: str, corrupted_data: Optional[str] = None):
        hint = "The saved planner state may be corrupted, inspect planner_state.json"
        super().__init__(message, hint)
        self.corrupted_data = corrupted_data


class ResponderError(PlannerError):
    """AI 对话服务调用失败的基类。

    核心不做重试，调用方 (UI) 负责注入兜底消息。
    """

    def __init__(
        self,
        message: str,
        persona: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        self.persona = persona or "unknown"
        self.model_name = model_name or "unknown"
        self.endpoint = endpoint

        context = f"[{self.persona}/{self.model_name}]"
        super().__init__(f"{context} {message}")

    def get_user_message(self) -> str:
        base = f"Assistant unavailable ({self.persona}/{self.model_name}): {self.message}"
        if self.hint:
            return f"{base}\n💡 Hint: {self.hint}"
        return base


class ResponderConnectionError(ResponderError):
    """无法连接到 AI 服务。"""

    def __init__(
        self,
        persona: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        super().__init__("Could not reach the assistant service", persona, model_name, endpoint)
        self.hint = "Check the network connection or the base_url in config/model.yaml"


class ResponderAuthError(ResponderError):
    """AI 服务鉴权失败。"""

    def __init__(
        self,
        persona: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        super().__init__("Assistant authentication failed", persona, model_name, endpoint)
        self.hint = "Check that the API key is configured"


class ResponderTimeoutError(ResponderError):
    """AI 服务调用超时。"""

    def __init__(
        self,
        persona: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        message = "Assistant call timed out"
        if timeout_seconds:
            message = f"Assistant call timed out ({timeout_seconds}s)"
        super().__init__(message, persona, model_name, endpoint)
        self.timeout_seconds = timeout_seconds
        self.hint = "The service may be slow, try again later"


class ResponderRateLimitError(ResponderError):
    """AI 服务请求频率限制。"""

    def __init__(
        self,
        persona: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__("Rate limit exceeded", persona, model_name, endpoint)
        self.retry_after = retry_after
        if retry_after:
            self.hint = f"Retry after {retry_after} seconds"
        else:
            self.hint = "Try again later"
