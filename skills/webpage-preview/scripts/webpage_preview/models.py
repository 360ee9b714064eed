from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .errors import InputError

_DEFAULT_MAX_HTML_BYTES = 10 * 1024 * 1024  # 10MB/页；设为 0 表示不限制

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class EditState(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"


class ElementKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    EMBEDDED_FRAME = "iframe"
    TEXT = "text"


class ExportFormat(str, Enum):
    RAW_HTML = "raw_html"
    COMPONENT_SOURCE = "component_source"


@dataclass(frozen=True)
class FetchRequest:
    """一次预览请求，target_url 总是绝对 URL。"""

    target_url: str

    @classmethod
    def from_user_input(cls, raw: Optional[str]) -> "FetchRequest":
        """规范化用户输入：无 scheme 时补 https://（//host 视为 https://host）。"""
        text = (raw or "").strip()
        if not text:
            raise InputError("URL parameter is required")
        if text.startswith("//"):
            text = "https:" + text
        elif not _SCHEME_RE.match(text):
            text = "https://" + text
        return cls(target_url=text)


@dataclass(frozen=True)
class RewrittenDocument:
    """重写后的自包含 HTML 文档"""

    final_url: str  # 跟随重定向后的实际地址（有效 base URL）
    html: str


@dataclass
class RenderSession:
    """单个预览面的会话状态"""

    document: Optional[RewrittenDocument] = None
    load_state: LoadState = LoadState.IDLE
    edit_state: EditState = EditState.VIEWING
    requested_url: Optional[str] = None
    generation: int = 0  # 请求代号，只有最新一次请求的结果会被采用


@dataclass(frozen=True)
class EditableElementRef:
    """编辑交互期间对单个节点的临时引用，不持久化。"""

    kind: ElementKind
    element: Any  # bs4.element.Tag
    document_id: int


@dataclass(frozen=True)
class ExportArtifact:
    format: ExportFormat
    content: str
    filename: Optional[str] = None
    mime_type: str = "text/plain"


@dataclass
class PreviewConfig:
    """抓取配置"""

    timeout: int = 20
    retries: int = 2  # 仅对网络层失败重试，HTTP 错误不重试
    max_html_bytes: int = _DEFAULT_MAX_HTML_BYTES
    ua_preset: str = "chrome-win"
    user_agent: Optional[str] = None
    extra_headers: dict = field(default_factory=dict)

# 检索端点通过该响应头回传有效 base URL
FINAL_URL_HEADER = "X-Preview-Final-Url"
