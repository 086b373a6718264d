"""内置 HTTP 服务器

提供 HTML 页面和一个小型 JSON API，把单个 CommandRunner 暴露给页面：

    GET  /                      页面
    GET  /api/state             运行状态 + 输出快照 + 滚动请求
    GET  /api/history           历史命令（最新在最后）
    POST /api/start             {"command": str, "timestamp": bool}
    POST /api/stop              停止当前命令（最多阻塞约半秒）
    POST /api/clear             清空输出
    POST /api/history/clear     清空历史
    POST /api/history/browse    {"direction": "older" | "newer"}

每个请求在独立线程中处理，stop 的阻塞不会影响页面轮询。
"""

from __future__ import annotations

import http.server
import json
import logging
import socketserver
import threading
from dataclasses import dataclass
from typing import Any

from ..runtime import CommandRunner

logger = logging.getLogger(__name__)

__all__ = [
    "RunnerServer",
    "ServerConfig",
]

MAX_BODY_BYTES = 64 * 1024


@dataclass
class ServerConfig:
    """服务器配置"""
    host: str = "127.0.0.1"
    port: int = 0  # 0 = 随机端口


class ReusableTCPServer(socketserver.ThreadingTCPServer):
    """支持端口复用的 TCP 服务器"""
    allow_reuse_address = True


class BadRequest(Exception):
    """请求体无效"""


class RunnerServer:
    """HTTP 服务器，页面通过 JSON API 操作注入的 CommandRunner"""

    def __init__(
        self,
        runner: CommandRunner,
        html: str,
        config: ServerConfig | None = None,
    ):
        self.runner = runner
        self.html = html
        self.config = config or ServerConfig()
        self._server: socketserver.TCPServer | None = None
        self._actual_port: int = 0

    @property
    def port(self) -> int:
        """实际绑定的端口"""
        return self._actual_port

    @property
    def url(self) -> str:
        """服务器 URL"""
        return f"http://{self.config.host}:{self._actual_port}"

    def start(self) -> int:
        """启动服务器，返回实际端口"""
        handler = self._create_handler()

        self._server = ReusableTCPServer(
            (self.config.host, self.config.port), handler
        )
        self._server.daemon_threads = True
        self._server.block_on_close = False

        self._actual_port = self._server.server_address[1]

        thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="gui_http_server"
        )
        thread.start()

        logger.info(f"GUI server started at {self.url}")
        return self._actual_port

    def stop(self):
        """停止服务器"""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            logger.debug("GUI server stopped")

    # ------------------------------------------------------------------
    # API 实现（与 HTTP 细节无关，便于测试）
    # ------------------------------------------------------------------

    def state(self) -> dict[str, Any]:
        runner = self.runner
        return {
            "status": runner.status().value,
            "state": runner.state.value,
            "output": runner.current_output(),
            "scroll": runner.should_scroll_to_bottom(),
            "command": runner.current_command,
            "elapsed": runner.elapsed,
            "history_size": len(runner.history),
        }

    def start_command(self, body: dict[str, Any]) -> dict[str, Any]:
        command = body.get("command")
        if not isinstance(command, str) or not command.strip():
            raise BadRequest("command must be a non-empty string")
        self.runner.start(command, want_timestamp=bool(body.get("timestamp", False)))
        return {"status": self.runner.status().value}

    def stop_command(self) -> dict[str, Any]:
        self.runner.stop()
        return {"status": self.runner.status().value}

    def browse_history(self, body: dict[str, Any]) -> dict[str, Any]:
        direction = body.get("direction")
        if direction == "older":
            command = self.runner.history.browse_older()
        elif direction == "newer":
            command = self.runner.history.browse_newer()
        else:
            raise BadRequest("direction must be 'older' or 'newer'")
        return {"command": command, "cursor": self.runner.history.cursor}

    def _create_handler(self):
        server = self

        class Handler(http.server.BaseHTTPRequestHandler):
            protocol_version = 'HTTP/1.1'

            def do_GET(self):
                if self.path == '/':
                    self._send(200, server.html.encode('utf-8'), 'text/html; charset=utf-8')
                elif self.path == '/api/state':
                    self._send_json(200, server.state())
                elif self.path == '/api/history':
                    self._send_json(200, {"history": server.runner.history_entries()})
                else:
                    self.send_error(404)

            def do_POST(self):
                try:
                    body = self._read_json()
                    if self.path == '/api/start':
                        result = server.start_command(body)
                    elif self.path == '/api/stop':
                        result = server.stop_command()
                    elif self.path == '/api/clear':
                        server.runner.clear_output()
                        result = {"ok": True}
                    elif self.path == '/api/history/clear':
                        server.runner.history.clear()
                        result = {"ok": True}
                    elif self.path == '/api/history/browse':
                        result = server.browse_history(body)
                    else:
                        self.send_error(404)
                        return
                except BadRequest as e:
                    self._send_json(400, {"error": str(e)})
                    return
                self._send_json(200, result)

            def _read_json(self) -> dict[str, Any]:
                length = int(self.headers.get('Content-Length') or 0)
                if length > MAX_BODY_BYTES:
                    # 未读取的请求体会污染后续请求，直接断开
                    self.close_connection = True
                    raise BadRequest("request body too large")
                if length == 0:
                    return {}
                try:
                    body = json.loads(self.rfile.read(length))
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    raise BadRequest(f"invalid JSON: {e}") from e
                if not isinstance(body, dict):
                    raise BadRequest("JSON body must be an object")
                return body

            def _send_json(self, code: int, payload: dict[str, Any]):
                content = json.dumps(payload, ensure_ascii=False).encode('utf-8')
                self._send(code, content, 'application/json; charset=utf-8')

            def _send(self, code: int, content: bytes, content_type: str):
                self.send_response(code)
                self.send_header('Content-Type', content_type)
                self.send_header('Content-Length', len(content))
                self.send_header('Cache-Control', 'no-cache')
                self.end_headers()
                self.wfile.write(content)

            def log_message(self, format, *args):
                pass

        return Handler
