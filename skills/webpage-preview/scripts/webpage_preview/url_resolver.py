"""相对引用解析。

页面被搬到另一个 origin 下展示后，所有相对资源都必须按页面的真实地址
（有效 base URL）解析，否则图片/样式/脚本会指向预览服务自身。
"""

from __future__ import annotations

from typing import List, Tuple
from urllib.parse import urljoin


def resolve(reference: str, base: str) -> str:
    """
    把 reference 解析为相对 base 的绝对 URL。

    - 支持绝对 URL、//host 协议相对、/x、../x、x、#frag
    - data:/javascript:/mailto: 等非层级 scheme 原样返回（urljoin 的行为）
    - 无法解析时原样返回，单个坏属性不应打断整页重写
    """
    if not reference:
        return reference
    ref = reference.strip()
    if not ref or not base:
        return reference
    try:
        return urljoin(base, ref)
    except ValueError:
        return reference


def parse_srcset(value: str) -> List[Tuple[str, str]]:
    """
    解析 srcset 为 [(url, descriptor), ...]。

    按 HTML 候选串语法：URL 为连续非空白字符，URL 末尾的逗号结束当前候选；
    描述符截止到括号外的下一个逗号。因此 data: URL 里的逗号不会被误切。
    """
    out: List[Tuple[str, str]] = []
    if not value:
        return out
    n = len(value)
    pos = 0
    while True:
        while pos < n and (value[pos].isspace() or value[pos] == ","):
            pos += 1
        if pos >= n:
            break

        start = pos
        while pos < n and not value[pos].isspace():
            pos += 1
        url = value[start:pos]

        descriptor = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            d_start = pos
            depth = 0
            while pos < n:
                ch = value[pos]
                if ch == "(":
                    depth += 1
                elif ch == ")" and depth:
                    depth -= 1
                elif ch == "," and depth == 0:
                    break
                pos += 1
            descriptor = value[d_start:pos].strip()

        if url:
            out.append((url, descriptor))
    return out


def rewrite_srcset(value: str, base: str) -> str:
    """逐条解析 srcset 中的 URL，描述符原样保留（空描述符保持为空）。"""
    entries = []
    for url, descriptor in parse_srcset(value):
        resolved = resolve(url, base)
        entries.append(f"{resolved} {descriptor}" if descriptor else resolved)
    return ", ".join(entries)
