"""FastAPI service for the Weekly Report Statistics dashboard.

Serves the stats file written by ``wr-stats stats`` (cached for a few
minutes) and a small HTML page that renders it.

Deployment: wr-stats serve   (or: uvicorn app:app --host 127.0.0.1 --port 8080)
"""

from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse, HTMLResponse

from analytics import load_stats, stats_to_dict

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
STATS_PATH = Path(os.environ.get("WR_STATS_FILE", "shared/stats.json"))
TEMPLATE_PATH = Path(__file__).parent / "dashboard_template.html"
CACHE_TTL_SECONDS = 300  # stats only change when the pipeline reruns

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(title="Weekly Report Statistics")

# ---------------------------------------------------------------------------
# Thread-safe cache
# ---------------------------------------------------------------------------
_cache_lock = threading.Lock()
_cache: dict[str, Any] = {
    "data": None,
    "built_at": 0.0,
}


def configure(stats_path: str | Path) -> None:
    """Point the app at *stats_path* and drop any cached stats."""
    global STATS_PATH
    with _cache_lock:
        STATS_PATH = Path(stats_path)
        _cache["data"] = None
        _cache["built_at"] = 0.0


def _read_stats() -> dict[str, Any]:
    """Load and normalize the stats file, mapping failures to HTTP errors."""
    try:
        stats = load_stats(str(STATS_PATH))
    except FileNotFoundError:
        raise HTTPException(status_code=503, detail="Stats file not found")
    except ValueError as e:
        raise HTTPException(status_code=500, detail=f"Invalid stats file: {e}")
    return stats_to_dict(stats)


def _get_cached_data(force_refresh: bool = False) -> dict[str, Any]:
    """Return cached stats, reloading the file if stale or forced."""
    now = time.monotonic()
    with _cache_lock:
        if (
            not force_refresh
            and _cache["data"] is not None
            and (now - _cache["built_at"]) < CACHE_TTL_SECONDS
        ):
            return _cache["data"]

    data = _read_stats()

    with _cache_lock:
        _cache["data"] = data
        _cache["built_at"] = time.monotonic()

    return data


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health")
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
def dashboard_html():
    """Serve the dashboard HTML with injected stats."""
    if not TEMPLATE_PATH.exists():
        raise HTTPException(status_code=500, detail="Template not found")

    data = _get_cached_data()
    template = TEMPLATE_PATH.read_text(encoding="utf-8")
    data_json = json.dumps(data, ensure_ascii=False)
    data_json = data_json.replace("</", r"<\/")
    html = template.replace(
        "const DASHBOARD_DATA = {};",
        f"const DASHBOARD_DATA = {data_json};",
    )
    return HTMLResponse(content=html)


@app.get("/api/stats")
def api_stats():
    """Return the stats JSON object."""
    return _get_cached_data()


@app.get("/api/refresh")
def api_refresh():
    """Reload the stats file and report the refreshed counts."""
    data = _get_cached_data(force_refresh=True)
    return {
        "status": "refreshed",
        "num_wrs": data["num_wrs"],
        "num_replied_wrs": data["num_replied_wrs"],
    }


@app.get("/stats/stats.json")
def raw_stats_file():
    """Serve the stats file byte-for-byte, as written by the pipeline."""
    if not STATS_PATH.exists():
        raise HTTPException(status_code=503, detail="Stats file not found")
    return FileResponse(STATS_PATH, media_type="application/json")
