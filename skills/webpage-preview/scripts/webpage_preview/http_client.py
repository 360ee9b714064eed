from __future__ import annotations

import codecs
import re
import time
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import requests

from .errors import InputError, ResponseTooLarge, UpstreamHttpError, UpstreamUnreachable
from .models import _DEFAULT_MAX_HTML_BYTES, PreviewConfig

UA_PRESETS: Dict[str, str] = {
    "tool": "Mozilla/5.0 (compatible; webpage_preview/1.0)",
    "edge-win": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0"
    ),
    "chrome-win": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "firefox-win": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:122.0) "
        "Gecko/20100101 Firefox/122.0"
    ),
    "chrome-mac": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "safari-mac": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/605.1.15 (KHTML, like Gecko) "
        "Version/17.3 Safari/605.1.15"
    ),
    "chrome-linux": (
        "Mozilla/5.0 (X11; Linux x86_64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
}

# 网络层失败（可重试）；HTTPError 由状态码单独处理，不在此列
_TRANSPORT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.TooManyRedirects,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
)


@dataclass
class FetchedPage:
    final_url: str  # 跟随重定向后的地址
    html: str
    status_code: int
    content_type: str = ""


# ---------------------------------------------------------------------------
# HTML <meta> charset detection
# ---------------------------------------------------------------------------
# 仅扫描 HTML 前 4KB 的 ASCII 安全区域来寻找 <meta charset="..."> 或
# <meta http-equiv="Content-Type" content="...; charset=...">
_META_CHARSET_RE = re.compile(
    rb'<meta[^>]+charset=["\']?\s*([A-Za-z0-9_.:-]+)',
    re.IGNORECASE,
)


def _detect_meta_charset(raw: bytes, limit: int = 4096) -> Optional[str]:
    """从 HTML 原始字节的前 *limit* 字节中提取 <meta> 声明的编码。

    返回标准化后的编码名称（可直接传给 ``bytes.decode``），
    未找到或名称无法识别时返回 ``None``。
    """
    m = _META_CHARSET_RE.search(raw[:limit])
    if not m:
        return None
    charset = m.group(1).decode("ascii", errors="ignore").strip()
    if not charset:
        return None
    try:
        return codecs.lookup(charset).name
    except LookupError:
        return None


def _decode_body(raw: bytes, http_encoding: Optional[str]) -> str:
    # requests 在 HTTP Content-Type 未声明 charset 时会默认 ISO-8859-1（RFC 2616），
    # 但很多页面只在 <meta> 里声明实际编码。
    #   1. HTTP 头明确给出 charset → 直接采信
    #   2. 否则尝试 <meta> 声明
    #   3. 都没有时回退到 utf-8
    is_default = (
        http_encoding is None
        or http_encoding.lower().replace("-", "") in ("iso88591", "latin1")
    )
    if is_default:
        encoding = _detect_meta_charset(raw) or "utf-8"
    else:
        encoding = http_encoding  # type: ignore[assignment]
    try:
        return raw.decode(encoding, errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


def _resolve_user_agent(user_agent: Optional[str], ua_preset: str) -> str:
    if user_agent and user_agent.strip():
        return user_agent.strip()
    return UA_PRESETS.get(ua_preset, UA_PRESETS["chrome-win"])


def _apply_header_lines(headers: Dict[str, str], header_lines: Sequence[str]) -> None:
    for h in header_lines:
        if not h:
            continue
        if ":" not in h:
            raise ValueError(f"--header 格式应为 'Key: Value'，收到：{h!r}")
        k, v = h.split(":", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise ValueError(f"--header Key 不能为空：{h!r}")
        headers[k] = v


def create_session(config: Optional[PreviewConfig] = None) -> requests.Session:
    """创建带浏览器标识的 requests.Session（部分站点会拒绝默认客户端 UA）"""
    config = config or PreviewConfig()
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": _resolve_user_agent(config.user_agent, config.ua_preset),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9,zh-CN;q=0.8,zh;q=0.7",
        }
    )
    if config.extra_headers:
        session.headers.update({str(k): str(v) for k, v in config.extra_headers.items() if str(k).strip()})
    return session


def _read_limited(r: requests.Response, url: str, max_bytes: Optional[int]) -> bytes:
    if max_bytes is not None:
        cl = r.headers.get("Content-Length")
        if cl:
            try:
                too_large = int(cl) > max_bytes
            except ValueError:
                too_large = False
            if too_large:
                raise ResponseTooLarge(f"HTML 响应过大（Content-Length={cl} > {max_bytes} bytes）", details=url)

    buf = bytearray()
    for chunk in r.iter_content(chunk_size=1024 * 128):
        if not chunk:
            continue
        buf.extend(chunk)
        if max_bytes is not None and len(buf) > max_bytes:
            raise ResponseTooLarge(f"HTML 响应过大（>{max_bytes} bytes）", details=url)
    return bytes(buf)


def fetch_page(
    session: requests.Session,
    url: str,
    timeout_s: int,
    retries: int,
    *,
    max_html_bytes: int = _DEFAULT_MAX_HTML_BYTES,
) -> FetchedPage:
    """
    GET 目标页面并解码为文本。

    - 非 2xx → UpstreamHttpError（不重试）
    - DNS/连接/超时/TLS → 额外重试 retries 次后抛 UpstreamUnreachable
    - 返回的 final_url 为跟随重定向后的地址
    """
    max_bytes: Optional[int] = max_html_bytes if (max_html_bytes and max_html_bytes > 0) else None
    attempts = max(0, retries) + 1
    for attempt in range(1, attempts + 1):
        r: Optional[requests.Response] = None
        try:
            r = session.get(
                url,
                timeout=timeout_s,
                stream=True,
                allow_redirects=True,
                headers={
                    "Connection": "close",
                    "Accept-Encoding": "identity",
                },
            )
            if not 200 <= r.status_code < 300:
                raise UpstreamHttpError(r.status_code, r.reason or "", url=url)

            raw = _read_limited(r, url, max_bytes)
            return FetchedPage(
                final_url=r.url or url,
                html=_decode_body(raw, r.encoding),
                status_code=r.status_code,
                content_type=r.headers.get("Content-Type", ""),
            )
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema, requests.exceptions.InvalidSchema) as e:
            raise InputError("Enter a valid http(s) URL.", details=str(e)) from e
        except _TRANSPORT_ERRORS as e:
            if attempt >= attempts:
                raise UpstreamUnreachable(e, url=url) from e
            time.sleep(min(3.0, 0.6 * attempt))
        except requests.exceptions.RequestException as e:
            raise UpstreamUnreachable(e, url=url) from e
        finally:
            if r is not None:
                r.close()
    raise UpstreamUnreachable(RuntimeError("fetch failed"), url=url)
