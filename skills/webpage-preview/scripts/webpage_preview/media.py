"""视频地址识别与播放器片段生成。"""

from __future__ import annotations

import html
import re
from typing import Optional

VIDEO_HOST_MARKERS = ("youtube.com", "youtu.be", "vimeo.com")

_VIDEO_FILE_RE = re.compile(r"\.(mp4|webm|ogg)$", re.IGNORECASE)
_SEGMENT_END_RE = re.compile(r"[/?#]")

YOUTUBE_EMBED_PREFIX = "https://www.youtube.com/embed/"
VIMEO_EMBED_PREFIX = "https://player.vimeo.com/video/"

YOUTUBE_ALLOW = "accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture"
VIMEO_ALLOW = "autoplay; fullscreen; picture-in-picture"


def is_video_url(url: Optional[str]) -> bool:
    if not url:
        return False
    if any(marker in url for marker in VIDEO_HOST_MARKERS):
        return True
    return bool(_VIDEO_FILE_RE.search(url))


def _segment_after(url: str, marker: str) -> Optional[str]:
    idx = url.find(marker)
    if idx < 0:
        return None
    rest = url[idx + len(marker):]
    segment = _SEGMENT_END_RE.split(rest, maxsplit=1)[0]
    return segment or None


def youtube_video_id(url: str) -> Optional[str]:
    """优先取 v= 参数（截止到 &），否则取 youtu.be/ 之后的路径段。"""
    if "v=" in url:
        value = url.split("v=", 1)[1].split("&", 1)[0]
        # v= 的值同样不应带上片段
        value = value.split("#", 1)[0]
        if value:
            return value
    return _segment_after(url, "youtu.be/")


def vimeo_video_id(url: str) -> Optional[str]:
    return _segment_after(url, "vimeo.com/")


def video_embed_html(url: str) -> str:
    """
    按地址类型生成播放器片段：

    - YouTube → youtube.com/embed/<id> 的 iframe
    - Vimeo → player.vimeo.com/video/<id> 的 iframe
    - 其他（直链视频文件）→ <video controls> + <source type="video/mp4">
    """
    if "youtube.com" in url or "youtu.be" in url:
        video_id = youtube_video_id(url)
        if video_id:
            src = html.escape(YOUTUBE_EMBED_PREFIX + video_id, quote=True)
            return (
                f'<iframe width="100%" height="100%" src="{src}" frameborder="0" '
                f'allow="{YOUTUBE_ALLOW}" allowfullscreen></iframe>'
            )
    if "vimeo.com" in url:
        video_id = vimeo_video_id(url)
        if video_id:
            src = html.escape(VIMEO_EMBED_PREFIX + video_id, quote=True)
            return (
                f'<iframe src="{src}" width="100%" height="100%" frameborder="0" '
                f'allow="{VIMEO_ALLOW}" allowfullscreen></iframe>'
            )
    src = html.escape(url, quote=True)
    return (
        '<video width="100%" height="100%" controls>'
        f'<source src="{src}" type="video/mp4">'
        "Your browser does not support the video tag."
        "</video>"
    )
