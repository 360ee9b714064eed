"""
预览会话：规范化用户输入，驱动 抓取 → 渲染宿主 → 编辑控制器，并负责失败占位。

抓取是唯一的挂起点。每次 begin_load() 都会递增会话的请求代号，
只有代号仍为最新的结果才会被采用，先发后至的旧响应直接丢弃。
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Optional

import requests

from .edit_mode import EditModeController, PromptFn
from .errors import InputError, PreviewError, ResponseTooLarge, UpstreamHttpError, UpstreamUnreachable
from .export import capture_document, export_as_component_source, export_as_file
from .http_client import create_session
from .models import (
    FINAL_URL_HEADER,
    EditState,
    ExportArtifact,
    FetchRequest,
    LoadState,
    PreviewConfig,
    RenderSession,
    RewrittenDocument,
)
from .render_host import RenderHost
from .rewriter import fetch_and_rewrite, rewrite_html
from .security import redact_url

FAILURE_PLACEHOLDER_HTML = """<div style="display:flex;justify-content:center;align-items:center;height:100%;font-family:sans-serif;color:#ef4444;flex-direction:column;gap:10px;">
  <p style="font-size:18px;font-weight:bold;">Failed to load website.</p>
  <p>Please check the URL or try another one.</p>
</div>"""

_UPSTREAM_ERROR_PREFIX = "Failed to fetch URL: "


class DirectFetcher:
    """进程内直接抓取并重写"""

    def __init__(self, config: Optional[PreviewConfig] = None, session: Optional[requests.Session] = None) -> None:
        self.config = config or PreviewConfig()
        self.session = session

    def fetch(self, target_url: str) -> RewrittenDocument:
        return fetch_and_rewrite(target_url, session=self.session, config=self.config)


class EndpointFetcher:
    """通过正在运行的检索端点（/api/proxy）抓取，错误状态映射回异常体系"""

    def __init__(
        self,
        endpoint: str,
        config: Optional[PreviewConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.config = config or PreviewConfig()
        self.session = session or requests.Session()

    def fetch(self, target_url: str) -> RewrittenDocument:
        try:
            r = self.session.get(
                f"{self.endpoint}/api/proxy",
                params={"url": target_url},
                timeout=self.config.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise UpstreamUnreachable(e, url=target_url) from e

        if r.status_code == 200:
            return RewrittenDocument(
                final_url=r.headers.get(FINAL_URL_HEADER) or target_url,
                html=r.text,
            )
        raise self._error_from_response(r, target_url)

    @staticmethod
    def _error_from_response(r: requests.Response, target_url: str) -> PreviewError:
        try:
            payload = r.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        message = str(payload.get("error") or r.reason or r.status_code)
        details = payload.get("details")

        # 上游站点自己返回 400 时端点原样转发状态码，先按前缀识别
        if message.startswith(_UPSTREAM_ERROR_PREFIX):
            return UpstreamHttpError(r.status_code, message[len(_UPSTREAM_ERROR_PREFIX):], url=target_url)
        if r.status_code == 400:
            return InputError(message, details=details)
        if r.status_code == ResponseTooLarge.status_code:
            return ResponseTooLarge(message, details=details)
        return UpstreamUnreachable(RuntimeError(details or message), url=target_url)


@dataclass(frozen=True)
class LoadTicket:
    generation: int
    target_url: str


class PreviewSession:
    def __init__(
        self,
        fetcher=None,
        host: Optional[RenderHost] = None,
        prompt: Optional[PromptFn] = None,
        config: Optional[PreviewConfig] = None,
    ) -> None:
        self.state = RenderSession()
        self.host = host or RenderHost()
        self.fetcher = fetcher or DirectFetcher(config)
        self.editor = EditModeController(self.host, self.state, prompt=prompt)
        self.last_error: Optional[PreviewError] = None

    @property
    def load_state(self) -> LoadState:
        return self.state.load_state

    # ------------------------------------------------------------------
    # 加载
    # ------------------------------------------------------------------
    def _start(self, requested_url: Optional[str]) -> LoadTicket:
        self.state.generation += 1
        self.state.requested_url = requested_url
        self.state.load_state = LoadState.LOADING
        self.state.document = None
        self.last_error = None
        self.editor.reset()
        self.host.clear()
        return LoadTicket(generation=self.state.generation, target_url=requested_url or "")

    def begin_load(self, raw_url: str) -> LoadTicket:
        """规范化输入并进入 LOADING；空输入抛 InputError，状态不变。"""
        request = FetchRequest.from_user_input(raw_url)
        return self._start(request.target_url)

    def is_current(self, ticket: LoadTicket) -> bool:
        return ticket.generation == self.state.generation

    def _accept(self, ticket: LoadTicket) -> bool:
        if self.is_current(ticket):
            return True
        print(f"警告：丢弃过期的加载结果：{redact_url(ticket.target_url)}", file=sys.stderr)
        return False

    def complete_load(self, ticket: LoadTicket, document: RewrittenDocument) -> bool:
        if not self._accept(ticket):
            return False
        self.state.document = document
        self.host.load(document.html)
        self.state.load_state = LoadState.READY
        return True

    def fail_load(self, ticket: LoadTicket, error: PreviewError) -> bool:
        if not self._accept(ticket):
            return False
        self.last_error = error
        self.state.document = None
        self.host.load(FAILURE_PLACEHOLDER_HTML)
        self.state.load_state = LoadState.FAILED
        print(f"警告：页面加载失败：{redact_url(ticket.target_url)}（{error.message}）", file=sys.stderr)
        return True

    def load(self, raw_url: str) -> LoadState:
        """一次完整的加载；任何可预期的失败都以失败占位呈现，不向调用方抛出。"""
        try:
            ticket = self.begin_load(raw_url)
        except InputError as e:
            self.fail_load(self._start(None), e)
            return self.state.load_state
        try:
            document = self.fetcher.fetch(ticket.target_url)
        except PreviewError as e:
            self.fail_load(ticket, e)
        else:
            self.complete_load(ticket, document)
        return self.state.load_state

    def reload(self) -> LoadState:
        if not self.state.requested_url:
            raise InputError("URL parameter is required")
        return self.load(self.state.requested_url)

    def load_document(self, page_html: str, base_url: str = "") -> LoadState:
        """加载已有的 HTML（本地文件模式）；base_url 为空时不注入 <base>。"""
        ticket = self._start(base_url or None)
        self.complete_load(ticket, RewrittenDocument(final_url=base_url, html=rewrite_html(page_html, base_url)))
        return self.state.load_state

    # ------------------------------------------------------------------
    # 编辑与导出
    # ------------------------------------------------------------------
    def toggle_edit(self) -> EditState:
        return self.editor.toggle()

    def capture(self) -> str:
        """只有 READY 状态才有可导出的内容（失败占位不算）。"""
        if self.state.load_state != LoadState.READY:
            return ""
        return capture_document(self.host)

    def export_html(self) -> ExportArtifact:
        return export_as_file(self.capture())

    def export_component(self) -> ExportArtifact:
        return export_as_component_source(self.capture())


def build_fetcher(config: PreviewConfig, endpoint: Optional[str] = None):
    if endpoint:
        return EndpointFetcher(endpoint, config=config, session=create_session(config))
    return DirectFetcher(config)
