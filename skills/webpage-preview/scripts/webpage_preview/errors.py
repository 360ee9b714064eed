from __future__ import annotations

from typing import Dict, Optional


class PreviewError(Exception):
    """预览流程中可预期的失败；status_code 为对外 HTTP 状态码。"""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> Dict[str, str]:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InputError(PreviewError):
    """目标 URL 缺失或格式错误"""

    status_code = 400


class UpstreamHttpError(PreviewError):
    """目标站点返回非 2xx"""

    def __init__(self, status: int, status_text: str = "", url: Optional[str] = None) -> None:
        super().__init__(f"Failed to fetch URL: {status_text or status}")
        self.status = status
        self.status_text = status_text
        self.url = url

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return self.status


class UpstreamUnreachable(PreviewError):
    """DNS / 连接 / 超时 / TLS 等网络层失败"""

    def __init__(self, cause: BaseException, url: Optional[str] = None) -> None:
        super().__init__("Failed to process request", details=str(cause))
        self.cause = cause
        self.url = url


class ResponseTooLarge(PreviewError):
    status_code = 502


class CaptureUnavailable(PreviewError):
    """渲染宿主未就绪或无法访问文档，没有可导出的内容"""


class SerializationError(PreviewError):
    """生成导出文本时出现意外错误"""
