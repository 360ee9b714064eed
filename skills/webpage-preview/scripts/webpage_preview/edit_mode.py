"""
编辑模式控制器。

进入编辑：body 可编辑 + body 上一个捕获阶段的点击监听 + <style id="editor-styles">；
退出编辑时逐项撤销，文档回到进入前的样子。

点击媒体元素（img/video/iframe 或其内部）会进入"等待替换"状态，由调用方通过
provide_replacement()/cancel_replacement() 给出结果，或在构造时传入同步的 prompt。
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Callable, Optional

from bs4.element import Tag

from .dom import closest, parse_html, set_style_property
from .media import is_video_url, video_embed_html
from .models import EditableElementRef, EditState, ElementKind, RenderSession
from .render_host import MEDIA_TAGS, InteractionEvent, LiveDocument, RenderHost

EDITOR_STYLE_ID = "editor-styles"

EDITOR_STYLES = """
    img:hover, video:hover, iframe:hover { outline: 4px solid #3b82f6 !important; cursor: pointer !important; transition: outline 0.1s; }
    img, video, iframe { outline: 2px dashed #3b82f6; box-sizing: border-box; }
    a { cursor: text !important; }
"""

HIGHLIGHT_OUTLINE = "4px solid #f59e0b"

IMAGE_PROMPT = "Enter new Image URL, OR a Video URL (YouTube, Vimeo, MP4) to replace this image:"
MEDIA_PROMPT = "Enter new Video/Iframe URL:"

VIDEO_CONTAINER_MIN_HEIGHT = "200px"

_KIND_BY_TAG = {
    "img": ElementKind.IMAGE,
    "video": ElementKind.VIDEO,
    "iframe": ElementKind.EMBEDDED_FRAME,
}

# prompt(message, current_src) -> 新地址；返回 None 表示取消
PromptFn = Callable[[str, Optional[str]], Optional[str]]


@dataclass
class PendingReplacement:
    ref: EditableElementRef
    prompt: str
    current_src: Optional[str]
    previous_style: Optional[str]  # None 表示原先没有 style 属性


class EditModeController:
    def __init__(self, host: RenderHost, session: RenderSession, prompt: Optional[PromptFn] = None) -> None:
        self._host = host
        self._session = session
        self._prompt = prompt
        self._document: Optional[LiveDocument] = None
        self._pending: Optional[PendingReplacement] = None

        # 已施加到 _document 上的改动
        self._applied = False
        self._body: Optional[Tag] = None
        self._saved_contenteditable: Optional[str] = None
        self._owned_style: Optional[Tag] = None

        self._unsubscribe = host.on_ready(self._on_ready)
        if host.document is not None:
            self._bind(host.document)

    # ------------------------------------------------------------------
    # 状态
    # ------------------------------------------------------------------
    @property
    def state(self) -> EditState:
        return self._session.edit_state

    @property
    def is_editing(self) -> bool:
        return self._session.edit_state == EditState.EDITING

    @property
    def pending(self) -> Optional[PendingReplacement]:
        return self._pending

    @property
    def is_awaiting_replacement(self) -> bool:
        return self._pending is not None

    def enter(self) -> None:
        if self.is_editing:
            return
        self._session.edit_state = EditState.EDITING
        if self._document is not None and self._host.is_current(self._document):
            self._apply(self._document)

    def exit(self) -> None:
        if not self.is_editing:
            return
        # 高亮和未决替换都要撤掉，退出后的文档与新加载的一致
        self.cancel_replacement()
        self._session.edit_state = EditState.VIEWING
        self._revert()

    def toggle(self) -> EditState:
        if self.is_editing:
            self.exit()
        else:
            self.enter()
        return self._session.edit_state

    def reset(self) -> None:
        """导航/新加载时强制回到浏览状态，丢弃未决的替换。"""
        self.cancel_replacement()
        self.exit()

    def close(self) -> None:
        self.reset()
        self._unsubscribe()

    # ------------------------------------------------------------------
    # 文档绑定
    # ------------------------------------------------------------------
    def _on_ready(self, doc: LiveDocument) -> None:
        self._bind(doc)

    def _bind(self, doc: LiveDocument) -> None:
        if self._document is doc:
            return
        self.cancel_replacement()
        # 旧实例已被替换，其上的改动随之作废，不再回写
        self._applied = False
        self._body = None
        self._saved_contenteditable = None
        self._owned_style = None
        self._document = doc
        if self.is_editing:
            self._apply(doc)

    def _apply(self, doc: LiveDocument) -> None:
        if self._applied:
            return
        body = doc.body
        self._body = body
        self._saved_contenteditable = body.get("contenteditable")
        body["contenteditable"] = "true"

        if doc.get_element_by_id(EDITOR_STYLE_ID) is None:
            style = doc.soup.new_tag("style", attrs={"id": EDITOR_STYLE_ID})
            style.string = EDITOR_STYLES
            doc.head.append(style)
            self._owned_style = style
        else:
            self._owned_style = None

        doc.add_event_listener(body, "click", self._handle_click, capture=True)
        self._applied = True

    def _revert(self) -> None:
        doc = self._document
        if not self._applied or doc is None:
            return
        body = self._body
        if self._saved_contenteditable is None:
            if "contenteditable" in body.attrs:
                del body["contenteditable"]
        else:
            body["contenteditable"] = self._saved_contenteditable

        doc.remove_event_listener(body, "click", self._handle_click, capture=True)

        if self._owned_style is not None:
            self._owned_style.extract()

        self._applied = False
        self._body = None
        self._saved_contenteditable = None
        self._owned_style = None

    # ------------------------------------------------------------------
    # 点击委托
    # ------------------------------------------------------------------
    def _handle_click(self, event: InteractionEvent) -> None:
        if self._pending is not None:
            # 替换对话框在前，其余点击一律吞掉
            event.prevent_default()
            event.stop_propagation()
            return

        media = closest(event.target, MEDIA_TAGS)
        if media is not None:
            event.prevent_default()
            event.stop_propagation()
            self._begin_replacement(media)
            if self._prompt is not None:
                self._ask_prompt()
            return

        if closest(event.target, ["a"]) is not None:
            # 只拦截跳转，事件继续冒泡以便放置光标
            event.prevent_default()

    def _begin_replacement(self, element: Tag) -> None:
        kind = _KIND_BY_TAG[element.name]
        previous_style = element.get("style")
        element["style"] = set_style_property(previous_style, "outline", HIGHLIGHT_OUTLINE)
        self._pending = PendingReplacement(
            ref=EditableElementRef(kind=kind, element=element, document_id=self._document.document_id),
            prompt=IMAGE_PROMPT if kind == ElementKind.IMAGE else MEDIA_PROMPT,
            current_src=element.get("src"),
            previous_style=previous_style,
        )

    def _ask_prompt(self) -> None:
        pending = self._pending
        answer = self._prompt(pending.prompt, pending.current_src)
        if answer is None:
            self.cancel_replacement()
        else:
            self.provide_replacement(answer)

    def _take_pending(self) -> Optional[PendingReplacement]:
        pending = self._pending
        self._pending = None
        if pending is None:
            return None
        element = pending.ref.element
        if pending.previous_style is None:
            if "style" in element.attrs:
                del element["style"]
        else:
            element["style"] = pending.previous_style
        return pending

    def cancel_replacement(self) -> None:
        self._take_pending()

    def provide_replacement(self, locator: Optional[str]) -> bool:
        """
        用 locator 替换等待中的媒体元素，返回是否发生了改动。

        - 视频地址 → 整个元素换成按原尺寸的容器，内含播放器片段
        - 图片 → 改 src 并移除 srcset
        - video/iframe → 改 src
        """
        pending = self._take_pending()
        if pending is None or not locator:
            return False
        if not self.is_editing:
            return False

        doc = self._host.document
        if doc is None or doc.document_id != pending.ref.document_id or not doc.contains(pending.ref.element):
            print("警告：文档已被替换或重新加载，本次媒体替换已忽略", file=sys.stderr)
            return False

        element = pending.ref.element
        if is_video_url(locator):
            self._replace_with_video(doc, element, locator)
        elif pending.ref.kind == ElementKind.IMAGE:
            element["src"] = locator
            if "srcset" in element.attrs:
                del element["srcset"]
        else:
            element["src"] = locator
        return True

    def _replace_with_video(self, doc: LiveDocument, element: Tag, locator: str) -> None:
        width, height = self._host.measure(element)
        style = (
            f"width: {f'{width}px' if width else '100%'}; "
            f"height: {f'{height}px' if height else 'auto'}; "
            f"min-height: {VIDEO_CONTAINER_MIN_HEIGHT};"
        )
        container = doc.soup.new_tag("div", attrs={"style": style})
        fragment = parse_html(video_embed_html(locator))
        for node in list(fragment.contents):
            container.append(node.extract())
        element.replace_with(container)

    # ------------------------------------------------------------------
    # 文本
    # ------------------------------------------------------------------
    def replace_text(self, element: Tag, text: str) -> bool:
        """光标处的文本编辑；仅在编辑状态且元素属于当前绑定文档时生效。"""
        doc = self._document
        if not self.is_editing or doc is None or not self._host.is_current(doc) or not doc.contains(element):
            return False
        element.string = text
        return True
