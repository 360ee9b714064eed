"""检索端点：GET /api/proxy?url=... 返回重写后的 HTML。"""

from __future__ import annotations

import sys
from typing import Callable, Optional

import requests
from flask import Flask, Response, jsonify, request

from .errors import PreviewError
from .http_client import create_session
from .models import FINAL_URL_HEADER, PreviewConfig
from .rewriter import fetch_and_rewrite
from .security import redact_url

SessionFactory = Callable[[PreviewConfig], requests.Session]


def create_app(
    config: Optional[PreviewConfig] = None,
    session_factory: SessionFactory = create_session,
) -> Flask:
    app = Flask(__name__)
    preview_config = config or PreviewConfig()

    @app.get("/healthz")
    def healthz():
        return jsonify({"status": "ok"})

    @app.get("/api/proxy")
    def proxy():
        target = (request.args.get("url") or "").strip()
        session = session_factory(preview_config)
        try:
            doc = fetch_and_rewrite(target, session=session, config=preview_config)
        except PreviewError as e:
            if e.status_code >= 500:
                print(f"错误：代理请求失败：{redact_url(target)}（{e.message}：{e.details or ''}）", file=sys.stderr)
            else:
                print(f"警告：代理请求被拒绝：{redact_url(target)}（{e.message}）", file=sys.stderr)
            return jsonify(e.to_payload()), e.status_code
        except Exception as e:
            print(f"错误：代理请求异常：{redact_url(target)}：{e}", file=sys.stderr)
            return jsonify({"error": "Failed to process request", "details": str(e)}), 500
        finally:
            session.close()

        resp = Response(doc.html, status=200, content_type="text/html; charset=utf-8")
        resp.headers[FINAL_URL_HEADER] = doc.final_url
        return resp

    return app


def serve(config: Optional[PreviewConfig] = None, host: str = "127.0.0.1", port: int = 8000) -> None:
    app = create_app(config)
    print(f"检索端点已启动：http://{host}:{port}/api/proxy?url=<目标地址>")
    app.run(host=host, port=port, debug=False)
