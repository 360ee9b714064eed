#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
抓取任意网页并重写为可在其他 origin 下独立展示的 HTML，支持替换媒体、改写文本，
导出为单个 HTML 文件或 React 组件源码；也可以作为检索端点服务运行。

依赖说明：
- requests（HTTP 请求）
- beautifulsoup4（宽松解析与改写文档树，使用标准库 html.parser 后端）
- flask（--serve 模式下的 /api/proxy 检索端点）

处理流程：
- 抓取页面（浏览器 UA，跟随重定向），以最终地址作为有效 base URL
- 把 img/script/iframe/link/a/source/video/audio 上的相对地址解析为绝对地址
- 在 <head> 最前面注入 <base> 与防跳出脚本
- 可选：进入编辑模式替换媒体元素（图片地址 / YouTube / Vimeo / MP4）或改写文本
- 导出 website-export.html 与组件源码
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Dict, List, Optional, Sequence, Tuple

# 支持通过 importlib 直接加载本脚本时导入同级 package
_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
if _SCRIPT_DIR not in sys.path:
    sys.path.insert(0, _SCRIPT_DIR)

from webpage_preview.errors import InputError, PreviewError, SerializationError, UpstreamHttpError
from webpage_preview.export import (
    DEFAULT_EXPORT_FILENAME,
    export_as_component_source,
    export_as_file,
    save_artifact,
)
from webpage_preview.http_client import UA_PRESETS, _apply_header_lines
from webpage_preview.models import _DEFAULT_MAX_HTML_BYTES, LoadState, PreviewConfig
from webpage_preview.security import redact_url
from webpage_preview.viewer import PreviewSession, build_fetcher

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_FILE_EXISTS = 2
EXIT_NOTHING_TO_EXPORT = 3


def _parse_assignment(value: str, flag: str) -> Tuple[str, str]:
    if "=" not in value:
        raise ValueError(f"{flag} 格式应为 'KEY=VALUE'，收到：{value!r}")
    key, val = value.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError(f"{flag} KEY 不能为空：{value!r}")
    return key, val.strip()


def _parse_media_replacements(values: Sequence[str]) -> List[Tuple[int, str]]:
    out: List[Tuple[int, str]] = []
    for value in values:
        key, locator = _parse_assignment(value, "--replace-media")
        try:
            index = int(key)
        except ValueError:
            raise ValueError(f"--replace-media INDEX 必须是整数：{value!r}") from None
        if index < 0:
            raise ValueError(f"--replace-media INDEX 不能为负数：{value!r}")
        out.append((index, locator))
    return out


def _print_fetch_error(url: str, error: PreviewError) -> None:
    safe_url = redact_url(url)
    if isinstance(error, InputError):
        print(f"错误：{error.message}：{safe_url}", file=sys.stderr)
        return
    if isinstance(error, UpstreamHttpError):
        print(f"错误：请求失败（HTTP {error.status}）：{safe_url}", file=sys.stderr)
        if error.status in (403, 429):
            print("", file=sys.stderr)
            print("可能触发了站点的反爬或访问频控。建议：", file=sys.stderr)
            print("  1. 在浏览器中打开该 URL，等待页面完全加载", file=sys.stderr)
            print("  2. 右键页面另存为 .html 文件", file=sys.stderr)
            print("  3. 使用 --local-html 与 --base-url 进行处理，例如：", file=sys.stderr)
            print(
                f'     python preview_web.py --local-html saved.html --base-url "{safe_url}" --out website-export.html',
                file=sys.stderr,
            )
        return
    print(f"错误：下载失败：{safe_url}", file=sys.stderr)
    print(f"详情：{error.message}" + (f"（{error.details}）" if error.details else ""), file=sys.stderr)
    print("建议：可改用浏览器保存 HTML 后，通过 --local-html 离线处理。", file=sys.stderr)


def _apply_edits(
    session: PreviewSession,
    replacements: List[Tuple[int, str]],
    text_edits: List[Tuple[str, str]],
) -> int:
    """在编辑模式下依次执行媒体替换与文本改写，返回成功的改动数。"""
    doc = session.host.document
    editor = session.editor
    applied = 0

    editor.enter()
    try:
        media = doc.media_elements()
        # 先按原始序号取出全部目标，替换过程中序号会变化
        targets = []
        for index, locator in replacements:
            if index >= len(media):
                print(f"警告：媒体序号越界：{index}（共 {len(media)} 个 img/video/iframe）", file=sys.stderr)
                continue
            targets.append((index, media[index], locator))

        for index, element, locator in targets:
            doc.dispatch(element, "click")
            if not editor.is_awaiting_replacement:
                print(f"警告：媒体 #{index} 未进入替换状态，已跳过", file=sys.stderr)
                continue
            if editor.provide_replacement(locator):
                applied += 1
                print(f"已替换媒体 #{index}：<{element.name}> → {redact_url(locator)}")

        for element_id, text in text_edits:
            element = doc.get_element_by_id(element_id)
            if element is None:
                print(f"警告：未找到 id={element_id!r} 的元素，文本未改写", file=sys.stderr)
                continue
            doc.dispatch(element, "click")
            if editor.replace_text(element, text):
                applied += 1
                print(f"已改写文本：#{element_id}")
    finally:
        editor.exit()
    return applied


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(
        description="抓取网页并重写为可独立展示的 HTML，可替换媒体/改写文本后导出 HTML 或 React 组件。",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例：
  # 抓取并导出
  python preview_web.py example.com --out site.html

  # 把第 1 个媒体元素换成 YouTube 视频，并导出组件源码
  python preview_web.py https://example.com --replace-media "0=https://youtu.be/abc123" --component-out Site.jsx

  # 处理浏览器另存的页面
  python preview_web.py --local-html saved.html --base-url https://example.com/page

  # 运行检索端点
  python preview_web.py --serve --port 8000
""",
    )
    ap.add_argument("url", nargs="?", help="要预览的网页 URL（无 scheme 时自动补 https://）")
    ap.add_argument("--out", help=f"导出 HTML 文件名（默认 {DEFAULT_EXPORT_FILENAME}）")
    ap.add_argument("--component-out", metavar="FILE", help="同时导出 React 组件源码到该文件（如 Site.jsx）")
    ap.add_argument("--print-html", action="store_true", help="把捕获的 HTML 源码打印到标准输出（查看代码）")
    ap.add_argument("--print-component", action="store_true", help="把 React 组件源码打印到标准输出")
    ap.add_argument("--overwrite", action="store_true", help="允许覆盖已存在的输出文件")
    ap.add_argument("--local-html", metavar="FILE", help="从本地 HTML 文件读取内容（跳过网络请求，用于处理浏览器保存的页面）")
    ap.add_argument("--base-url", help="配合 --local-html 使用，指定相对地址解析的基准 URL")
    ap.add_argument("--endpoint", help="通过已运行的检索端点抓取（如 http://127.0.0.1:8000）")
    # 编辑
    ap.add_argument("--replace-media", action="append", default=[], metavar="INDEX=URL",
                    help="替换第 INDEX 个 img/video/iframe（从 0 开始，可重复）；URL 为视频地址时换成播放器")
    ap.add_argument("--edit-text", action="append", default=[], metavar="ID=TEXT",
                    help="改写 id 为 ID 的元素的文本（可重复）")
    # 抓取配置
    ap.add_argument("--timeout", type=int, default=20, help="请求超时（秒），默认 20")
    ap.add_argument("--retries", type=int, default=2, help="网络层失败的重试次数，默认 2")
    ap.add_argument(
        "--max-html-bytes",
        type=int,
        default=_DEFAULT_MAX_HTML_BYTES,
        help="单页 HTML 最大允许字节数（默认 10MB；设为 0 表示不限制）",
    )
    ap.add_argument("--header", action="append", default=[], help="追加请求头（可重复），如 'Accept-Language: en'")
    ap.add_argument("--ua-preset", choices=sorted(UA_PRESETS.keys()), default="chrome-win", help="User-Agent 预设（默认 chrome-win）")
    ap.add_argument("--user-agent", "--ua", dest="user_agent", help="自定义 User-Agent（优先于 --ua-preset）")
    # 服务模式
    serve_group = ap.add_argument_group("检索端点")
    serve_group.add_argument("--serve", action="store_true", help="以 Flask 服务运行 /api/proxy 检索端点")
    serve_group.add_argument("--host", default="127.0.0.1", help="监听地址（默认 127.0.0.1）")
    serve_group.add_argument("--port", type=int, default=8000, help="监听端口（默认 8000）")

    args = ap.parse_args(argv)

    headers: Dict[str, str] = {}
    try:
        _apply_header_lines(headers, args.header)
        replacements = _parse_media_replacements(args.replace_media)
        text_edits = [_parse_assignment(v, "--edit-text") for v in args.edit_text]
    except ValueError as e:
        print(f"错误：{e}", file=sys.stderr)
        return EXIT_ERROR

    config = PreviewConfig(
        timeout=args.timeout,
        retries=args.retries,
        max_html_bytes=args.max_html_bytes,
        ua_preset=args.ua_preset,
        user_agent=args.user_agent,
        extra_headers=headers,
    )

    if args.serve:
        from webpage_preview.server import serve

        serve(config, host=args.host, port=args.port)
        return EXIT_SUCCESS

    out_html = args.out or DEFAULT_EXPORT_FILENAME
    for path in filter(None, (out_html, args.component_out)):
        if os.path.exists(path) and not args.overwrite:
            print(f"文件已存在：{path}（如需覆盖请加 --overwrite）", file=sys.stderr)
            return EXIT_FILE_EXISTS

    session = PreviewSession(fetcher=build_fetcher(config, args.endpoint))

    if args.local_html:
        if not os.path.isfile(args.local_html):
            print(f"错误：本地 HTML 文件不存在：{args.local_html}", file=sys.stderr)
            return EXIT_ERROR
        size = os.path.getsize(args.local_html)
        if args.max_html_bytes and args.max_html_bytes > 0 and size > args.max_html_bytes:
            print(f"错误：本地 HTML 文件过大（{size} > {args.max_html_bytes} bytes）：{args.local_html}", file=sys.stderr)
            return EXIT_ERROR

        base_url = args.base_url or args.url or ""
        if not base_url:
            print("警告：未指定 --base-url 或 url，相对地址将保持原样，且不会注入 <base>", file=sys.stderr)
        with open(args.local_html, "r", encoding="utf-8", errors="replace") as f:
            page_html = f.read()
        print(f"从本地文件读取：{args.local_html}")
        session.load_document(page_html, base_url)
    else:
        if not args.url:
            ap.error("必须提供 URL 参数，或使用 --local-html 读取本地文件，或使用 --serve 运行检索端点")
        url = args.url
        print(f"下载页面：{redact_url(url)}")
        if session.load(url) != LoadState.READY:
            _print_fetch_error(session.state.requested_url or url, session.last_error)
            return EXIT_ERROR
        final_url = session.state.document.final_url
        print(f"页面已就绪：{redact_url(final_url)}")

    if replacements or text_edits:
        applied = _apply_edits(session, replacements, text_edits)
        print(f"编辑完成：{applied}/{len(replacements) + len(text_edits)} 处改动")

    captured = session.capture()
    if not captured:
        print("错误：没有可导出的内容", file=sys.stderr)
        return EXIT_NOTHING_TO_EXPORT

    try:
        saved = save_artifact(export_as_file(captured, filename=os.path.basename(out_html)), out_html, overwrite=args.overwrite)
    except FileExistsError:
        print(f"文件已存在：{out_html}（如需覆盖请加 --overwrite）", file=sys.stderr)
        return EXIT_FILE_EXISTS
    print(f"已导出 HTML：{saved}")
    if args.print_html:
        print(captured)

    if args.component_out or args.print_component:
        try:
            component = export_as_component_source(captured)
        except SerializationError as e:
            print(f"错误：{e.message}（{e.details}）", file=sys.stderr)
            return EXIT_ERROR
        if args.component_out:
            try:
                saved = save_artifact(component, args.component_out, overwrite=args.overwrite)
            except FileExistsError:
                print(f"文件已存在：{args.component_out}（如需覆盖请加 --overwrite）", file=sys.stderr)
                return EXIT_FILE_EXISTS
            print(f"已导出组件源码：{saved}")
        if args.print_component:
            print(component.content)

    return EXIT_SUCCESS


if __name__ == "__main__":
    raise SystemExit(main())
