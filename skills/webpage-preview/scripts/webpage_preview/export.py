from __future__ import annotations

import os
import sys

from .dom import ensure_document_skeleton, parse_html
from .errors import CaptureUnavailable, SerializationError
from .models import ExportArtifact, ExportFormat
from .render_host import RenderHost

DEFAULT_EXPORT_FILENAME = "website-export.html"
COMPONENT_NAME = "GeneratedComponent"
COMPONENT_FILENAME = f"{COMPONENT_NAME}.jsx"

_COMPONENT_TEMPLATE = """import React from 'react';

export default function {name}() {{
  return (
    <div
      dangerouslySetInnerHTML={{{{
        __html: `
{body}
        `
      }}}}
    />
  );
}}"""


def capture_document(host: RenderHost) -> str:
    """
    序列化渲染宿主当前的文档：doctype + 换行 + 根元素外层标记。

    宿主没有文档或序列化失败时返回空串，从不抛异常。
    """
    doc = host.document
    if doc is None:
        return ""
    try:
        return doc.serialize()
    except Exception as e:
        print(f"错误：无法捕获当前文档：{e}", file=sys.stderr)
        return ""


def require_capture(host: RenderHost) -> str:
    captured = capture_document(host)
    if not captured:
        raise CaptureUnavailable("Could not capture code. Please try again.")
    return captured


def export_as_file(captured: str, filename: str = DEFAULT_EXPORT_FILENAME) -> ExportArtifact:
    if not captured:
        raise CaptureUnavailable("Could not capture code. Please try again.")
    return ExportArtifact(
        format=ExportFormat.RAW_HTML,
        content=captured,
        filename=filename,
        mime_type="text/html",
    )


def _escape_template_literal(text: str) -> str:
    # 反斜杠先转义，避免与后面加入的转义符混淆
    return text.replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${")


def export_as_component_source(captured: str) -> ExportArtifact:
    """把 body 内部标记包进一个 dangerouslySetInnerHTML 的 React 组件。"""
    if not captured:
        raise CaptureUnavailable("No content to copy.")
    try:
        soup = parse_html(captured)
        ensure_document_skeleton(soup)
        body_markup = soup.find("body").decode_contents()
        source = _COMPONENT_TEMPLATE.format(name=COMPONENT_NAME, body=_escape_template_literal(body_markup))
    except Exception as e:
        raise SerializationError("Failed to generate React code.", details=str(e)) from e
    return ExportArtifact(
        format=ExportFormat.COMPONENT_SOURCE,
        content=source,
        filename=COMPONENT_FILENAME,
        mime_type="text/javascript",
    )


def save_artifact(artifact: ExportArtifact, path: str, overwrite: bool = False) -> str:
    """写出导出产物（UTF-8），返回绝对路径；文件已存在且未指定 overwrite 时抛 FileExistsError。"""
    out_path = os.path.abspath(path)
    if os.path.exists(out_path) and not overwrite:
        raise FileExistsError(out_path)
    parent = os.path.dirname(out_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(artifact.content)
    return out_path
