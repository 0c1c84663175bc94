"""The HTML control panel for the random rating writer."""

from __future__ import annotations

from html import escape

CONTENT_TYPE = "text/html; charset=utf-8"

_TITLE = "电影评分随机写入面板"
_EMPTY_TEXT = "暂无数据"
_REFRESH_MS = 5000

_ENDPOINTS = {
    "start": "/api/write/start",
    "stop": "/api/write/stop",
    "status": "/api/write/status",
    "hotspots": "/api/write/hotspots",
}

_LOG_COLUMNS = ("时间", "电影ID", "用户ID", "评分", "状态")
_HOTSPOT_COLUMNS = ("电影ID", "写入次数")

_BUTTONS = (
    ("startBtn", "start-btn", "开始写入"),
    ("stopBtn", "stop-btn", "停止写入"),
    ("refreshBtn", "refresh-btn", "刷新数据"),
)

_CARD_SHADOW = "0 1px 5px rgba(0,0,0,0.1)"
_FLEX_ROW = {"display": "flex", "justify-content": "space-between", "align-items": "center"}

_STYLE_RULES: tuple[tuple[str, dict[str, str]], ...] = (
    ("body", {"font-family": "Arial, sans-serif", "margin": "0", "padding": "20px",
              "background-color": "#f5f5f5"}),
    (".container", {"max-width": "1200px", "margin": "0 auto", "background-color": "white",
                    "border-radius": "8px", "box-shadow": "0 2px 10px rgba(0,0,0,0.1)",
                    "padding": "20px"}),
    (".header", {**_FLEX_ROW, "margin-bottom": "20px", "padding-bottom": "15px",
                 "border-bottom": "1px solid #eee"}),
    ("h1", {"margin": "0", "color": "#333"}),
    (".control-panel", {"display": "flex", "gap": "10px"}),
    ("button", {"padding": "8px 16px", "border": "none", "border-radius": "4px",
                "cursor": "pointer", "font-weight": "bold",
                "transition": "background-color 0.2s"}),
    (".start-btn", {"background-color": "#4caf50", "color": "white"}),
    (".stop-btn", {"background-color": "#f44336", "color": "white"}),
    (".refresh-btn", {"background-color": "#2196f3", "color": "white"}),
    ("button:hover", {"opacity": "0.9"}),
    (".dashboard", {"display": "flex", "gap": "20px", "margin-top": "20px"}),
    (".panel", {"flex": "1", "background-color": "white", "border-radius": "8px",
                "box-shadow": _CARD_SHADOW, "padding": "15px"}),
    (".panel-header", {**_FLEX_ROW, "margin-bottom": "15px", "padding-bottom": "10px",
                       "border-bottom": "1px solid #eee"}),
    (".panel-title", {"margin": "0", "color": "#444", "font-size": "18px"}),
    (".status-badge", {"padding": "5px 10px", "border-radius": "20px", "font-size": "14px",
                       "font-weight": "bold"}),
    (".status-running", {"background-color": "#e8f5e9", "color": "#4caf50"}),
    (".status-stopped", {"background-color": "#ffebee", "color": "#f44336"}),
    ("table", {"width": "100%", "border-collapse": "collapse", "margin-top": "10px"}),
    ("th, td", {"padding": "10px", "text-align": "left", "border-bottom": "1px solid #eee"}),
    ("th", {"font-weight": "bold", "color": "#555", "background-color": "#f9f9f9"}),
    ("tr:hover", {"background-color": "#f5f5f5"}),
    (".log-status", {"padding": "3px 6px", "border-radius": "4px", "font-size": "12px"}),
    (".status-pending", {"background-color": "#fff9c4", "color": "#fbc02d"}),
    (".status-success", {"background-color": "#e8f5e9", "color": "#4caf50"}),
    (".status-failed", {"background-color": "#ffebee", "color": "#f44336"}),
    (".panel-scroll", {"max-height": "500px", "overflow-y": "auto"}),
    (".no-data", {"text-align": "center", "padding": "20px", "color": "#777"}),
)

_SCRIPT_BODY = """
const byId = (id) => document.getElementById(id);
const STATUS_CLASSES = { success: 'status-success', failed: 'status-failed' };

function fillRows(body, rows, width) {
  if (!rows.length) {
    body.innerHTML = '<tr><td colspan="' + width + '" class="no-data">暂无数据</td></tr>';
    return;
  }
  body.innerHTML = rows
    .map((cells) => '<tr>' + cells.map((cell) => '<td>' + cell + '</td>').join('') + '</tr>')
    .join('');
}

async function getJSON(url, options) {
  const reply = await fetch(url, options);
  return reply.json();
}

async function updateStatus() {
  try {
    const data = await getJSON(ENDPOINTS.status);
    const badge = byId('statusBadge');
    badge.textContent = data.running ? '运行中' : '已停止';
    badge.className = 'status-badge ' + (data.running ? 'status-running' : 'status-stopped');
    const rows = (data.logs || []).map((entry) => [
      entry.timestamp,
      entry.movieId,
      entry.userId,
      entry.rating,
      '<span class="log-status ' + (STATUS_CLASSES[entry.status] || 'status-pending') + '">' +
        entry.status + '</span>',
    ]);
    fillRows(byId('logsBody'), rows, 5);
  } catch (error) {
    console.error('获取状态失败:', error);
  }
}

async function updateHotspots() {
  try {
    const data = await getJSON(ENDPOINTS.hotspots);
    const rows = (data.hotspots || []).map((spot) => [spot.movieId, spot.count]);
    fillRows(byId('hotspotsBody'), rows, 2);
  } catch (error) {
    console.error('获取热点数据失败:', error);
  }
}

function refreshData() {
  updateStatus();
  updateHotspots();
}

function control(action, doneLabel, failLabel) {
  return async () => {
    try {
      console.log(doneLabel, await getJSON(ENDPOINTS[action], { method: 'POST' }));
      refreshData();
    } catch (error) {
      console.error(failLabel, error);
    }
  };
}

byId('startBtn').addEventListener('click', control('start', '写入服务启动:', '启动服务失败:'));
byId('stopBtn').addEventListener('click', control('stop', '写入服务停止:', '停止服务失败:'));
byId('refreshBtn').addEventListener('click', refreshData);
refreshData();
setInterval(refreshData, REFRESH_MS);
"""


def _style_sheet() -> str:
    def rule(selector: str, properties: dict[str, str]) -> str:
        body = "; ".join(f"{name}: {value}" for name, value in properties.items())
        return f"{selector} {{ {body}; }}"

    return "\n".join(rule(selector, properties) for selector, properties in _STYLE_RULES)


def _script() -> str:
    endpoints = ", ".join(f"{name}: '{path}'" for name, path in _ENDPOINTS.items())
    return f"const ENDPOINTS = {{ {endpoints} }};\nconst REFRESH_MS = {_REFRESH_MS};\n" + _SCRIPT_BODY


def _table(table_id: str, body_id: str, columns: tuple[str, ...]) -> str:
    head = "".join(f"<th>{escape(column)}</th>" for column in columns)
    placeholder = f'<tr><td colspan="{len(columns)}" class="no-data">{_EMPTY_TEXT}</td></tr>'
    return (
        f'<table id="{table_id}"><thead><tr>{head}</tr></thead>'
        f'<tbody id="{body_id}">{placeholder}</tbody></table>'
    )


def _panel(title: str, aside: str, table: str) -> str:
    return (
        '<div class="panel">'
        f'<div class="panel-header"><h2 class="panel-title">{title}</h2>{aside}</div>'
        f'<div class="panel-scroll">{table}</div>'
        "</div>"
    )


def _build_page() -> str:
    buttons = "".join(
        f'<button id="{button_id}" class="{css}">{label}</button>' for button_id, css, label in _BUTTONS
    )
    logs_panel = _panel(
        "写入日志",
        '<div id="statusBadge" class="status-badge status-stopped">已停止</div>',
        _table("logsTable", "logsBody", _LOG_COLUMNS),
    )
    hotspots_panel = _panel(
        "热点电影",
        "<div>最近10分钟写入最多的电影</div>",
        _table("hotspotsTable", "hotspotsBody", _HOTSPOT_COLUMNS),
    )
    parts = [
        "<!DOCTYPE html>",
        '<html lang="zh-CN">',
        "<head>",
        '<meta charset="UTF-8">',
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">',
        f"<title>{_TITLE}</title>",
        f"<style>\n{_style_sheet()}\n</style>",
        "</head>",
        "<body>",
        '<div class="container">',
        f'<div class="header"><h1>{_TITLE}</h1><div class="control-panel">{buttons}</div></div>',
        f'<div class="dashboard">{logs_panel}{hotspots_panel}</div>',
        "</div>",
        f"<script>\n{_script()}</script>",
        "</body>",
        "</html>",
    ]
    return "\n".join(parts) + "\n"


_PAGE = _build_page()


def render_write_panel() -> str:
    """The HTML page that controls and monitors the random rating writer."""
    return _PAGE