"""HTML rendering for the library management dashboard."""

from __future__ import annotations

import json
from html import escape
from textwrap import dedent
from urllib.parse import quote, quote_plus

from .models import ContentType, Group, RecordOrigin
from .naming import search_query
from .services.library import LibraryView
from .utils import format_bytes

PLACEHOLDER_POSTER = (
    '<div class="no-poster"><span class="icon">image_not_supported</span></div>'
)

DASHBOARD_TEMPLATE = dedent(
    """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>__APP_NAME__ · Library</title>
    <link rel="stylesheet" href="https://fonts.googleapis.com/icon?family=Material+Icons" />
    <style>
        :root {
            color-scheme: dark;
            font-family: 'Inter', 'Segoe UI', system-ui, -apple-system, sans-serif;
            --surface: #141414;
            --surface-strong: #1f1f1f;
            --text-primary: #f5f5f5;
            --text-muted: #a6a6a6;
            --outline: #2b2b2b;
            --accent: #e2b616;
            background: #000000;
            color: var(--text-primary);
        }
        * { box-sizing: border-box; }
        body { margin: 0; padding: 1rem; background: #000000; }
        .icon { font-family: 'Material Icons'; font-size: 20px; vertical-align: middle; }
        header { display: flex; flex-wrap: wrap; gap: 1rem; align-items: center; justify-content: space-between; margin-bottom: 1.5rem; }
        header h1 { margin: 0; color: var(--accent); font-size: 1.6rem; }
        .stats { color: var(--text-muted); }
        .toolbar { display: flex; flex-wrap: wrap; gap: 0.5rem; }
        .tabs { display: flex; gap: 0.5rem; margin-bottom: 1rem; flex-wrap: wrap; }
        .tabs button.active { background: var(--accent); color: #000; }
        .grid-container { display: none; grid-template-columns: repeat(auto-fill, minmax(170px, 1fr)); gap: 1rem; }
        .grid-container.active { display: grid; }
        .card { background: var(--surface); border: 1px solid var(--outline); border-radius: 8px; overflow: hidden; display: flex; flex-direction: column; }
        .card.hidden-item { border-style: dashed; opacity: 0.6; }
        .poster-area { position: relative; height: 230px; background: #050505; cursor: pointer; display: flex; align-items: center; justify-content: center; }
        .poster-img { width: 100%; height: 100%; object-fit: cover; }
        .no-poster { color: #555; }
        .badge, .size-badge { position: absolute; background: rgba(0, 0, 0, 0.75); padding: 2px 6px; border-radius: 4px; font-size: 0.75rem; }
        .badge { top: 6px; left: 6px; }
        .size-badge { bottom: 6px; right: 6px; }
        .content { padding: 0.6rem; display: flex; flex-direction: column; gap: 0.4rem; }
        .title { font-weight: 600; white-space: nowrap; overflow: hidden; text-overflow: ellipsis; cursor: pointer; }
        .status-text { font-size: 0.75rem; font-weight: 700; }
        .input-row { display: flex; gap: 4px; }
        input, textarea { background: var(--surface-strong); color: var(--text-primary); border: 1px solid var(--outline); border-radius: 4px; padding: 6px; width: 100%; }
        button { background: var(--surface-strong); color: var(--text-primary); border: 1px solid var(--outline); border-radius: 4px; padding: 6px 10px; cursor: pointer; }
        button.primary { background: var(--accent); color: #000; border: none; font-weight: 700; }
        .btn-imdb { color: var(--accent); text-decoration: none; font-size: 0.85rem; }
        .actions { display: flex; gap: 4px; }
        .actions form { flex: 1; margin: 0; }
        .actions button { width: 100%; }
        details.add-panel { background: var(--surface); border: 1px solid var(--outline); border-radius: 8px; padding: 0.75rem; margin-bottom: 1rem; }
        details.add-panel form { display: grid; gap: 0.5rem; margin-top: 0.5rem; }
        dialog { background: var(--surface); color: var(--text-primary); border: 1px solid var(--outline); border-radius: 8px; max-width: 90vw; }
        dialog ul { padding-left: 1rem; font-size: 0.85rem; }
    </style>
</head>
<body>
    <header>
        <div>
            <h1>__APP_NAME__</h1>
            <div class="stats">__STATS_SIZE__ · __STATS_FILES__ files</div>
        </div>
        <div class="toolbar">
            <form action="/manager/refresh" method="post"><button type="submit" class="primary"><span class="icon">sync</span> Refresh</button></form>
            <a href="/manager?showHidden=__SHOW_HIDDEN_TOGGLE__"><button type="button"><span class="icon">__TRASH_ICON__</span> __TRASH_TEXT__</button></a>
        </div>
    </header>
    <details class="add-panel">
        <summary>Add to account</summary>
        <form action="/manager/add-magnet" method="post">
            <input type="text" name="magnet" placeholder="magnet:?xt=..." required />
            <input type="text" name="imdbId" placeholder="tt... (optional)" />
            <button type="submit" class="primary">Add magnet</button>
        </form>
        <form action="/manager/add-links" method="post">
            <textarea name="links" rows="3" placeholder="One hoster link per line" required></textarea>
            <input type="text" name="imdbId" placeholder="tt... (optional)" />
            <button type="submit" class="primary">Add links</button>
        </form>
    </details>
    <nav class="tabs">
        <button type="button" class="active" data-grid="grid-downloads-series">Downloads · Series</button>
        <button type="button" data-grid="grid-downloads-movie">Downloads · Movies</button>
        <button type="button" data-grid="grid-torrents-series">Torrents · Series</button>
        <button type="button" data-grid="grid-torrents-movie">Torrents · Movies</button>
    </nav>
    __GRID_DOWNLOADS_SERIES__
    __GRID_DOWNLOADS_MOVIE__
    __GRID_TORRENTS_SERIES__
    __GRID_TORRENTS_MOVIE__
    <dialog id="details"><h3 id="details-title"></h3><ul id="details-files"></ul><button type="button" onclick="this.closest('dialog').close()">Close</button></dialog>
    <script>
        document.querySelectorAll('.tabs button').forEach((button) => {
            button.addEventListener('click', () => {
                document.querySelectorAll('.tabs button').forEach((b) => b.classList.remove('active'));
                document.querySelectorAll('.grid-container').forEach((g) => g.classList.remove('active'));
                button.classList.add('active');
                document.getElementById(button.dataset.grid).classList.add('active');
            });
        });
        function showDetails(card) {
            const files = JSON.parse(decodeURIComponent(card.dataset.files));
            document.getElementById('details-title').textContent = card.dataset.title;
            const list = document.getElementById('details-files');
            list.replaceChildren(...files.map((name) => {
                const item = document.createElement('li');
                item.textContent = name;
                return item;
            }));
            document.getElementById('details').showModal();
        }
        function confirmDelete() {
            return confirm('Delete these files from the account?');
        }
    </script>
</body>
</html>
"""
)


def _status_html(group: Group) -> str:
    if group.origin == "torrents":
        first = group.records[0]
        status = getattr(first, "status", "")
        if status == "downloading":
            progress = getattr(first, "progress", 0) or 0
            return f'<div class="status-text" style="color:#f59e0b">DOWNLOADING {progress:g}%</div>'
        if status == "magnet_conversion":
            return '<div class="status-text" style="color:#8b5cf6">CONVERTING MAGNET</div>'
        if status and status != "downloaded":
            return f'<div class="status-text" style="color:#ef4444">{escape(status.upper())}</div>'
        return '<div class="status-text" style="color:#10b981">READY</div>'
    if any(getattr(record, "streamable", 1) != 1 for record in group.records):
        return '<div class="status-text" style="color:#f59e0b">PROCESSING</div>'
    return ""


def render_card(group: Group) -> str:
    """Return the markup of one group tile."""

    title = escape(group.title)
    poster = (
        f'<img src="{escape(group.poster)}" class="poster-img" alt="" />'
        if group.poster
        else PLACEHOLDER_POSTER
    )
    current_id = group.assigned_id if group.assigned_id and group.assigned_id.startswith("tt") else ""
    search_url = f"https://www.imdb.com/find?q={quote_plus(search_query(group.display_name))}"
    files_payload = quote(json.dumps([record.filename for record in group.records]))
    card_class = "card hidden-item" if group.hidden else "card"
    hide_button = (
        '<button type="submit"><span class="icon">undo</span></button>'
        if group.hidden
        else '<button type="submit"><span class="icon">visibility_off</span></button>'
    )
    key = escape(group.key)
    return (
        f'<div class="{card_class}" data-title="{title}" data-files="{files_payload}">'
        f'<div class="poster-area" onclick="showDetails(this.parentElement)">{poster}'
        f'<div class="badge"><span class="icon" style="font-size:14px">folder</span> {group.count}</div>'
        f'<div class="size-badge">{format_bytes(group.size)}</div></div>'
        f'<div class="content">'
        f'<div class="title" onclick="showDetails(this.closest(\'.card\'))">{title}</div>'
        f"{_status_html(group)}"
        f'<a href="{escape(search_url)}" target="_blank" rel="noopener" class="btn-imdb">'
        f'<span class="icon" style="font-size:16px">search</span> Find ID</a>'
        f'<form action="/manager/update-group" method="post" style="margin:0">'
        f'<input type="hidden" name="groupKey" value="{key}" />'
        f'<input type="hidden" name="type" value="{group.type}" />'
        f'<div class="input-row"><input type="text" name="imdbId" value="{escape(current_id)}" placeholder="tt..." />'
        f'<button type="submit"><span class="icon">save</span></button></div></form>'
        f'<div class="actions">'
        f'<form action="/manager/toggle-hide" method="post"><input type="hidden" name="groupKey" value="{key}" />{hide_button}</form>'
        f'<form action="/manager/delete-rd" method="post" onsubmit="return confirmDelete()">'
        f'<input type="hidden" name="downloadIds" value="{escape(",".join(group.record_ids))}" />'
        f'<button type="submit"><span class="icon">delete</span></button></form>'
        f"</div></div></div>"
    )


def render_grid(
    view: LibraryView, origin: RecordOrigin, content_type: ContentType, *, active: bool
) -> str:
    cards = "".join(render_card(group) for group in view.sorted(origin, content_type))
    state = " active" if active else ""
    return f'<div id="grid-{origin}-{content_type}" class="grid-container{state}">{cards}</div>'


def render_dashboard(view: LibraryView, *, app_name: str, show_hidden: bool) -> str:
    """Return the complete dashboard page."""

    replacements = {
        "__APP_NAME__": escape(app_name),
        "__STATS_SIZE__": format_bytes(view.total_size),
        "__STATS_FILES__": str(view.total_files),
        "__SHOW_HIDDEN_TOGGLE__": "false" if show_hidden else "true",
        "__TRASH_ICON__": "undo" if show_hidden else "delete_sweep",
        "__TRASH_TEXT__": "Leave hidden view" if show_hidden else "Hidden",
        "__GRID_DOWNLOADS_SERIES__": render_grid(view, "downloads", "series", active=True),
        "__GRID_DOWNLOADS_MOVIE__": render_grid(view, "downloads", "movie", active=False),
        "__GRID_TORRENTS_SERIES__": render_grid(view, "torrents", "series", active=False),
        "__GRID_TORRENTS_MOVIE__": render_grid(view, "torrents", "movie", active=False),
    }
    page = DASHBOARD_TEMPLATE
    for placeholder, value in replacements.items():
        page = page.replace(placeholder, value)
    return page
