from __future__ import annotations

from urllib.parse import urlparse

from .errors import InputError


def redact_url(url: str) -> str:
    """
    URL 脱敏：默认仅保留 scheme://host/path，移除 query/fragment。

    - 仅对 http/https 且含 netloc 的 URL 生效
    - 其他形式（相对路径、空字符串等）原样返回
    """
    try:
        p = urlparse(url)
        if p.scheme in ("http", "https") and p.netloc:
            return p._replace(query="", fragment="").geturl()
    except ValueError:
        pass
    return url


def validate_target_url(url: str) -> str:
    """
    校验代理目标：只接受带主机名的 http/https 绝对 URL。

    file:、javascript:、data: 等 scheme 一律拒绝，避免服务端被当作本地文件读取器。
    """
    text = (url or "").strip()
    if not text:
        raise InputError("URL parameter is required")
    try:
        p = urlparse(text)
        host = p.hostname
    except ValueError as exc:
        raise InputError("Enter a valid http(s) URL.", details=str(exc)) from exc
    if p.scheme not in ("http", "https") or not host:
        raise InputError("Enter a valid http(s) URL.", details=redact_url(text))
    return text
