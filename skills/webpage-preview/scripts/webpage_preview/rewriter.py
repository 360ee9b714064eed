"""抓取并重写第三方页面，使其可以在另一个 origin 下安全、完整地展示。

重写在服务端完成：预览面是隔离的，不允许它直接向任意目标 origin 发同源请求，
只有抓取这一步会访问外网。
"""

from __future__ import annotations

import sys
from typing import Dict, Optional, Tuple

import requests
from bs4 import BeautifulSoup

from .dom import ensure_document_skeleton, parse_html
from .http_client import create_session, fetch_page
from .models import PreviewConfig, RewrittenDocument
from .security import redact_url, validate_target_url
from .url_resolver import resolve, rewrite_srcset

# 携带资源地址的属性
RESOURCE_ATTRIBUTES: Dict[str, Tuple[str, ...]] = {
    "img": ("src", "srcset"),
    "script": ("src",),
    "iframe": ("src",),
    "link": ("href",),
    "a": ("href",),
    "source": ("src", "srcset"),
    "video": ("src", "poster"),
    "audio": ("src",),
}

SRCSET_ATTRIBUTES = frozenset({"srcset"})

# 防止被嵌入页面通过 window.top 跳出预览面
ESCAPE_NEUTRALIZATION_SCRIPT = """
    try {
        if (window.top !== window.self) {
            window.top = window.self;
        }
    } catch (e) { }
"""


def rewrite_resource_urls(soup: BeautifulSoup, base_url: str) -> int:
    """
    把资源属性解析为相对 base_url 的绝对地址，返回改写的属性个数。

    逐属性尽力而为：某个属性失败只告警并保留原值，不影响其余部分。
    """
    rewritten = 0
    for tag_name, attrs in RESOURCE_ATTRIBUTES.items():
        for element in soup.find_all(tag_name):
            for attr in attrs:
                value = element.get(attr)
                if not value or not isinstance(value, str):
                    continue
                try:
                    if attr in SRCSET_ATTRIBUTES:
                        new_value = rewrite_srcset(value, base_url)
                    else:
                        new_value = resolve(value, base_url)
                except Exception as e:
                    print(f"警告：<{tag_name} {attr}> 重写失败，已保留原值：{value[:80]}\n  - 错误：{e}", file=sys.stderr)
                    continue
                if new_value != value:
                    element[attr] = new_value
                    rewritten += 1
    return rewritten


def inject_preamble(soup: BeautifulSoup, base_url: str) -> None:
    """在 <head> 最前面注入 <base> 声明与反跳出脚本（无 base_url 时只注入脚本）。"""
    ensure_document_skeleton(soup)
    head = soup.find("head")

    script = soup.new_tag("script")
    script.string = ESCAPE_NEUTRALIZATION_SCRIPT
    head.insert(0, script)

    # <base> 兜底：重写阶段漏掉的属性仍然按真实地址解析
    if base_url:
        head.insert(0, soup.new_tag("base", attrs={"href": base_url}))


def rewrite_html(page_html: str, base_url: str) -> str:
    """解析 → 补全骨架 → 重写资源地址 → 注入前导 → 序列化。"""
    soup = parse_html(page_html)
    ensure_document_skeleton(soup)
    if base_url:
        rewrite_resource_urls(soup, base_url)
    inject_preamble(soup, base_url)
    return str(soup)


def fetch_and_rewrite(
    target_url: str,
    *,
    session: Optional[requests.Session] = None,
    config: Optional[PreviewConfig] = None,
) -> RewrittenDocument:
    """
    抓取目标页面并返回重写后的自包含文档。

    有效 base URL 取跟随重定向后的最终地址，而非请求地址：
    页面里的相对资源是相对于页面真正所在的位置。
    """
    config = config or PreviewConfig()
    url = validate_target_url(target_url)

    own_session = session is None
    if session is None:
        session = create_session(config)
    try:
        page = fetch_page(
            session=session,
            url=url,
            timeout_s=config.timeout,
            retries=config.retries,
            max_html_bytes=config.max_html_bytes,
        )
    finally:
        if own_session:
            session.close()

    final_url = page.final_url or url
    if final_url != url:
        print(f"已重定向：{redact_url(url)} → {redact_url(final_url)}")
    return RewrittenDocument(final_url=final_url, html=rewrite_html(page.html, final_url))
