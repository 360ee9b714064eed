"""隔离渲染宿主：持有至多一个可变的文档树，并提供最小的 DOM 事件模型。"""

from __future__ import annotations

import html
import itertools
import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

from .dom import closest, doctype_declaration, ensure_document_skeleton, parse_html, parse_style

SANDBOX_POLICY = "allow-scripts allow-same-origin allow-forms allow-modals allow-popups"

MEDIA_TAGS = ("img", "video", "iframe")

_PX_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(px)?\s*$", re.IGNORECASE)

_document_ids = itertools.count(1)

Listener = Callable[["InteractionEvent"], Any]


@dataclass
class InteractionEvent:
    type: str
    target: Tag
    current_target: Optional[Tag] = None
    phase: str = "none"  # capture / target / bubble
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


@dataclass
class _Registration:
    node: Tag
    type: str
    callback: Listener
    capture: bool


@dataclass(eq=False)
class LiveDocument:
    """一次加载得到的文档实例；document_id 在宿主生命周期内唯一。"""

    soup: BeautifulSoup
    document_id: int = field(default_factory=lambda: next(_document_ids))
    navigations: List[str] = field(default_factory=list)
    caret: Optional[Tag] = None
    _listeners: List[_Registration] = field(default_factory=list, repr=False)

    @classmethod
    def parse(cls, markup: str) -> "LiveDocument":
        soup = parse_html(markup)
        ensure_document_skeleton(soup)
        return cls(soup=soup)

    @property
    def root(self) -> Tag:
        return self.soup.find("html")

    @property
    def head(self) -> Tag:
        return self.soup.find("head")

    @property
    def body(self) -> Tag:
        return self.soup.find("body")

    def doctype_declaration(self) -> str:
        return doctype_declaration(self.soup)

    def serialize(self) -> str:
        return f"{self.doctype_declaration()}\n{self.root}"

    def get_element_by_id(self, element_id: str) -> Optional[Tag]:
        return self.soup.find(attrs={"id": element_id})

    def media_elements(self) -> List[Tag]:
        """按文档顺序返回所有 img/video/iframe。"""
        return self.soup.find_all(list(MEDIA_TAGS))

    def contains(self, node: Optional[Tag]) -> bool:
        current = node
        while current is not None:
            if current is self.soup:
                return True
            current = current.parent
        return False

    # ------------------------------------------------------------------
    # 事件
    # ------------------------------------------------------------------
    def add_event_listener(self, node: Tag, event_type: str, callback: Listener, capture: bool = False) -> None:
        for reg in self._listeners:
            if reg.node is node and reg.type == event_type and reg.callback == callback and reg.capture == capture:
                return
        self._listeners.append(_Registration(node, event_type, callback, capture))

    def remove_event_listener(self, node: Tag, event_type: str, callback: Listener, capture: bool = False) -> None:
        self._listeners = [
            reg
            for reg in self._listeners
            if not (reg.node is node and reg.type == event_type and reg.callback == callback and reg.capture == capture)
        ]

    def listener_count(self, node: Optional[Tag] = None, event_type: Optional[str] = None) -> int:
        return sum(
            1
            for reg in self._listeners
            if (node is None or reg.node is node) and (event_type is None or reg.type == event_type)
        )

    def _invoke(self, event: InteractionEvent, node: Tag, capture: Optional[bool]) -> None:
        for reg in list(self._listeners):
            if reg.node is not node or reg.type != event.type:
                continue
            if capture is not None and reg.capture != capture:
                continue
            event.current_target = node
            reg.callback(event)

    def dispatch(self, target: Tag, event_type: str = "click") -> InteractionEvent:
        """
        按捕获 → 目标 → 冒泡三个阶段派发事件，随后执行默认动作：

        - 未被 prevent_default 的点击落在 <a href> 内 → 记录一次导航
        - 传播未被阻止且 body 可编辑 → 光标落到目标节点
        """
        event = InteractionEvent(type=event_type, target=target)
        path: List[Tag] = []
        node = target.parent
        while node is not None and not isinstance(node, BeautifulSoup):
            path.append(node)
            node = node.parent
        path.reverse()

        event.phase = "capture"
        for node in path:
            self._invoke(event, node, capture=True)
            if event.propagation_stopped:
                break

        if not event.propagation_stopped:
            event.phase = "target"
            self._invoke(event, target, capture=None)

        if not event.propagation_stopped:
            event.phase = "bubble"
            for node in reversed(path):
                self._invoke(event, node, capture=False)
                if event.propagation_stopped:
                    break

        event.phase = "none"
        event.current_target = None
        if event_type == "click":
            self._run_click_defaults(event)
        return event

    def _run_click_defaults(self, event: InteractionEvent) -> None:
        if not event.default_prevented:
            link = closest(event.target, ["a"])
            if link is not None and link.get("href"):
                self.navigations.append(link["href"])
        if not event.propagation_stopped and self._is_editable(event.target):
            self.caret = event.target

    @staticmethod
    def _is_editable(node: Tag) -> bool:
        current = node
        while current is not None and not isinstance(current, BeautifulSoup):
            value = current.get("contenteditable") if isinstance(current, Tag) else None
            if value is not None:
                return value.strip().lower() in ("", "true", "plaintext-only")
            current = current.parent
        return False


class RenderHost:
    """
    隔离的预览面。

    宿主在 load() 之前不暴露任何文档（document 为 None）；每次 load()/reload()
    都会生成新的文档实例并通知 on_ready 订阅者。
    """

    def __init__(self) -> None:
        self._document: Optional[LiveDocument] = None
        self._source: Optional[str] = None
        self._ready_callbacks: List[Callable[[LiveDocument], Any]] = []

    @property
    def document(self) -> Optional[LiveDocument]:
        return self._document

    def load(self, markup: str) -> LiveDocument:
        doc = LiveDocument.parse(markup)
        self._source = markup
        self._document = doc
        for callback in list(self._ready_callbacks):
            callback(doc)
        return doc

    def reload(self) -> Optional[LiveDocument]:
        """页面在框架内自行刷新：按原内容重新解析，编辑过的改动随之丢失。"""
        if self._source is None:
            return None
        return self.load(self._source)

    def clear(self) -> None:
        self._document = None
        self._source = None

    def on_ready(self, callback: Callable[[LiveDocument], Any]) -> Callable[[], None]:
        self._ready_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._ready_callbacks:
                self._ready_callbacks.remove(callback)

        return unsubscribe

    def is_current(self, doc: Optional[LiveDocument]) -> bool:
        return doc is not None and doc is self._document

    def frame_markup(self, title: str = "Website preview") -> str:
        """宿主页面嵌入用的 <iframe srcdoc=… sandbox=…>。"""
        content = self._document.serialize() if self._document is not None else ""
        return (
            f'<iframe title="{html.escape(title, quote=True)}" '
            f'srcdoc="{html.escape(content, quote=True)}" '
            f'sandbox="{SANDBOX_POLICY}" '
            'style="width: 100%; height: 100%; border: 0;"></iframe>'
        )

    @staticmethod
    def measure(element: Tag) -> Tuple[int, int]:
        """元素渲染尺寸（CSS 像素）：先看内联 style，再看 width/height 属性；未知为 0。"""
        style = parse_style(element.get("style"))
        return (
            _pixels(style.get("width"), element.get("width")),
            _pixels(style.get("height"), element.get("height")),
        )


def _pixels(*candidates: Optional[str]) -> int:
    for value in candidates:
        if not value:
            continue
        m = _PX_RE.match(value)
        if m:
            return int(round(float(m.group(1))))
    return 0
