"""
异常体系。每个异常携带 code + http_status + severity。

核心层对 "不存在" 返回 None/False, 由 HTTP 层转换为 GroupNotFoundError。
存储错误不在核心层捕获, 原样上抛。
"""
from __future__ import annotations


class RegistryError(Exception):
    """基类异常。"""
    code: str = "UNKNOWN_ERROR"
    http_status: int = 400
    severity: str = "error"

    def __init__(self, message: str = "", code: str | None = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error_code": self.code, "message": self.message, "severity": self.severity}


class GroupNotFoundError(RegistryError):
    code = "GROUP_NOT_FOUND"; http_status = 404; severity = "warning"

class StoreUnavailableError(RegistryError):
    code = "STORE_UNAVAILABLE"; http_status = 503; severity = "critical"
