from __future__ import annotations

import re
from typing import Dict, Iterable, Optional

from bs4 import BeautifulSoup, Doctype
from bs4.element import NavigableString, Tag

DEFAULT_DOCTYPE = "<!DOCTYPE html>"

_STYLE_DECL_RE = re.compile(r"\s*([-\w]+)\s*:\s*([^;]*)")


def parse_html(markup: str) -> BeautifulSoup:
    """
    宽松解析任意第三方 HTML，遇到畸形标记不会抛异常。

    使用标准库 html.parser 后端；关闭多值属性拆分，保证 class/rel 等属性原样回写。
    """
    soup = BeautifulSoup(markup or "", "html.parser", multi_valued_attributes=None)
    _normalize_doctype(soup)
    return soup


def _normalize_doctype(soup: BeautifulSoup) -> None:
    # 小写的 <!doctype html> 会被保存成 "doctype html"，原样输出即 <!DOCTYPE doctype html>
    doctype = find_doctype(soup)
    if doctype is None:
        return
    text = str(doctype).strip()
    if text[:7].lower() == "doctype":
        doctype.replace_with(Doctype(text[7:].strip()))


def ensure_document_skeleton(soup: BeautifulSoup) -> Tag:
    """确保存在 html/head/body 骨架（html.parser 不会自动补全），返回 <html>。"""
    root = soup.find("html")
    if root is None:
        root = soup.new_tag("html")
        for node in list(soup.contents):
            if isinstance(node, Doctype):
                continue
            root.append(node.extract())
        soup.append(root)

    if soup.find("head") is None:
        root.insert(0, soup.new_tag("head"))

    if soup.find("body") is None:
        head = soup.find("head")
        body = soup.new_tag("body")
        for node in list(root.contents):
            if node is head:
                continue
            body.append(node.extract())
        root.append(body)

    if root.parent is soup:
        _adopt_stray_nodes(soup, root)
    return root


def _adopt_stray_nodes(soup: BeautifulSoup, root: Tag) -> None:
    # html.parser 把 </html> 之后（以及 <html> 之前）的内容留在顶层，序列化只输出 <html>；
    # 浏览器会把它们挪进 <body>，这里照做。doctype、注释和空白留在原处
    body = root.find("body")
    if body is None:
        return
    leading = []
    trailing = []
    seen_root = False
    for node in soup.contents:
        if node is root:
            seen_root = True
            continue
        if not isinstance(node, Tag) and not (type(node) is NavigableString and node.strip()):
            continue
        (trailing if seen_root else leading).append(node)
    for i, node in enumerate(leading):
        body.insert(i, node.extract())
    for node in trailing:
        body.append(node.extract())


def find_doctype(soup: BeautifulSoup) -> Optional[Doctype]:
    for node in soup.contents:
        if isinstance(node, Doctype):
            return node
    return None


def doctype_declaration(soup: BeautifulSoup) -> str:
    """重建 doctype 声明；文档没有 doctype 时回退为标准的 <!DOCTYPE html>。"""
    doctype = find_doctype(soup)
    if doctype is None:
        return DEFAULT_DOCTYPE
    return f"<!DOCTYPE {doctype}>"


def closest(node, names: Iterable[str]) -> Optional[Tag]:
    """从 node 自身开始向上查找第一个标签名在 names 中的元素（同 Element.closest）。"""
    wanted = set(names)
    current = node if isinstance(node, Tag) else getattr(node, "parent", None)
    while current is not None and not isinstance(current, BeautifulSoup):
        if current.name in wanted:
            return current
        current = current.parent
    return None


def parse_style(style: Optional[str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for m in _STYLE_DECL_RE.finditer(style or ""):
        out[m.group(1).strip().lower()] = m.group(2).strip()
    return out


def set_style_property(style: Optional[str], name: str, value: str) -> str:
    """设置内联 style 中的单个属性，其余声明保持原顺序。"""
    decls = parse_style(style)
    decls[name.lower()] = value
    return " ".join(f"{k}: {v};" for k, v in decls.items())
