"""HTML 模板生成。

生成命令运行页面：命令输入（上下键翻历史）、执行/停止、清空、示例菜单、
选项（自动滚动、时间戳、输出高度）、状态指示和输出区域。
页面每 100ms 轮询一次 /api/state。
"""

from __future__ import annotations

import html
import json

from .colors import COLORS

__all__ = [
    "EXAMPLE_COMMANDS",
    "generate_html",
]

# (菜单文字, 命令)
EXAMPLE_COMMANDS: list[tuple[str, str]] = [
    ("List files (ls -la)", "ls -la"),
    ("System info (uname -a)", "uname -a"),
    ("Disk usage (df -h)", "df -h"),
    ("Process list (ps aux)", "ps aux | head -20"),
    ("Ping test", "ping -c 5 8.8.8.8"),
    ("Update packages (sudo apt update)", "sudo apt update"),
]


def generate_html(
    *,
    title: str = "Command Runner",
    auto_scroll: bool = True,
    timestamps: bool = False,
    initial_command: str = "ls -la",
    poll_interval_ms: int = 100,
) -> str:
    """生成 HTML 页面。

    Args:
        title: 窗口标题
        auto_scroll: "Auto-scroll" 默认值
        timestamps: "Show Timestamps" 默认值
        initial_command: 输入框初始内容
        poll_interval_ms: 状态轮询间隔（毫秒）

    Returns:
        完整的 HTML 字符串
    """
    examples_html = "\n".join(
        f'<option value="{html.escape(cmd, quote=True)}">{html.escape(label)}</option>'
        for label, cmd in EXAMPLE_COMMANDS
    )
    settings_js = json.dumps({
        "autoScroll": auto_scroll,
        "timestamps": timestamps,
        "pollMs": poll_interval_ms,
    })
    # "</" 会提前结束 <script>
    initial_js = json.dumps(initial_command).replace("</", "<\\/")

    return f'''<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<title>{html.escape(title)}</title>
<style>
* {{ margin: 0; padding: 0; box-sizing: border-box; }}
body {{
    background: {COLORS["bg"]};
    color: {COLORS["fg"]};
    font-family: Monaco, Menlo, Consolas, 'Courier New', monospace;
    font-size: 12px;
    line-height: 1.4;
    height: 100vh;
    display: flex;
    flex-direction: column;
    padding: 8px;
    gap: 6px;
}}
#menubar, #controls, #statusbar, #footer {{
    display: flex;
    gap: 8px;
    align-items: center;
    flex-shrink: 0;
}}
#menubar {{
    background: {COLORS["bg_secondary"]};
    border-bottom: 1px solid {COLORS["border"]};
    padding: 4px 8px;
}}
input, select, button {{
    background: #333;
    border: 1px solid {COLORS["border"]};
    color: {COLORS["fg"]};
    font-family: inherit;
    font-size: 12px;
    padding: 3px 6px;
}}
#command {{ flex: 1; }}
button:hover {{ background: {COLORS["hover"]}; }}
button:disabled {{ color: {COLORS["fg_dim"]}; }}
button.stop {{ background: {COLORS["error"]}; color: #fff; }}
#status.running {{ color: {COLORS["running"]}; }}
#status.idle {{ color: {COLORS["success"]}; }}
#output {{
    background: #111;
    border: 1px solid {COLORS["border"]};
    overflow: auto;
    white-space: pre;
    padding: 6px;
    height: 400px;
}}
#output::selection {{ background: {COLORS["selection"]}; }}
#footer {{ color: {COLORS["fg_muted"]}; }}
.hint {{ color: {COLORS["fg_muted"]}; }}
</style>
</head>
<body>
<div id="menubar">
    <label><input type="checkbox" id="opt-autoscroll"> Auto-scroll</label>
    <label><input type="checkbox" id="opt-timestamps"> Show Timestamps</label>
    <button id="btn-clear-history">Clear History</button>
    <select id="examples">
        <option value="">Examples</option>
        {examples_html}
    </select>
</div>
<div class="hint">Enter a shell command and press Execute. Output streams in real-time below.</div>
<div id="controls">
    <input id="command" type="text" autocomplete="off"
           title="Use Up/Down arrows for command history">
    <button id="btn-run">Execute</button>
    <button id="btn-clear">Clear</button>
    <input id="height" type="range" min="100" max="800" value="400" title="Output height">
</div>
<div id="statusbar">
    <span id="status" class="idle">&#9679; Idle</span>
    <span>| Output:</span>
</div>
<div id="output"></div>
<div id="footer">History: <span id="history-size">0</span> commands</div>
<script>
const SETTINGS = {settings_js};
const $ = (id) => document.getElementById(id);
const commandInput = $('command');
const output = $('output');
let running = false;
let lastOutput = '';

commandInput.value = {initial_js};
$('opt-autoscroll').checked = SETTINGS.autoScroll;
$('opt-timestamps').checked = SETTINGS.timestamps;

async function api(path, body) {{
    const opts = body === undefined ? {{}} : {{
        method: 'POST',
        headers: {{'Content-Type': 'application/json'}},
        body: JSON.stringify(body),
    }};
    const resp = await fetch(path, opts);
    return resp.json();
}}

function renderButton() {{
    const btn = $('btn-run');
    if (running) {{
        btn.textContent = 'Stop';
        btn.className = 'stop';
        btn.disabled = false;
    }} else {{
        btn.textContent = 'Execute';
        btn.className = '';
        btn.disabled = commandInput.value.trim().length === 0;
    }}
}}

async function execute() {{
    const command = commandInput.value.trim();
    if (!command || running) return;
    await api('/api/start', {{command: command, timestamp: $('opt-timestamps').checked}});
    await poll();
}}

async function stop() {{
    await api('/api/stop', {{}});
    await poll();
}}

async function poll() {{
    try {{
        const state = await api('/api/state');
        running = state.status === 'running';
        const status = $('status');
        status.className = running ? 'running' : 'idle';
        status.innerHTML = running ? '&#9679; Running' : '&#9679; Idle';
        $('history-size').textContent = state.history_size;
        const atBottom = output.scrollTop >= output.scrollHeight - output.clientHeight - 1;
        if (state.output !== lastOutput) {{
            output.textContent = state.output;
            lastOutput = state.output;
        }}
        if ($('opt-autoscroll').checked && (state.scroll || atBottom)) {{
            output.scrollTop = output.scrollHeight;
        }}
        renderButton();
    }} catch (e) {{
        // 服务器已关闭
    }}
}}

$('btn-run').addEventListener('click', () => running ? stop() : execute());
$('btn-clear').addEventListener('click', async () => {{ await api('/api/clear', {{}}); await poll(); }});
$('btn-clear-history').addEventListener('click', async () => {{ await api('/api/history/clear', {{}}); await poll(); }});
$('examples').addEventListener('change', (e) => {{
    if (e.target.value) commandInput.value = e.target.value;
    e.target.value = '';
    renderButton();
}});
$('height').addEventListener('input', (e) => {{ output.style.height = e.target.value + 'px'; }});
commandInput.addEventListener('input', renderButton);
commandInput.addEventListener('keydown', async (e) => {{
    if (e.key === 'Enter') {{
        e.preventDefault();
        execute();
    }} else if (e.key === 'ArrowUp' || e.key === 'ArrowDown') {{
        e.preventDefault();
        const direction = e.key === 'ArrowUp' ? 'older' : 'newer';
        const result = await api('/api/history/browse', {{direction: direction}});
        if (result.command !== null) commandInput.value = result.command;
        renderButton();
    }}
}});

setInterval(poll, SETTINGS.pollMs);
poll();
</script>
</body>
</html>
'''
