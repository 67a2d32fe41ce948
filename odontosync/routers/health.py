from __future__ import annotations

import mimetypes
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse

from .. import config

router = APIRouter(tags=["ops"])

# Explicit types: a JS bundle served as text/html breaks the SPA
ASSET_MEDIA_TYPES = {
    ".js": "application/javascript; charset=utf-8",
    ".mjs": "application/javascript; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".map": "application/json",
    ".svg": "image/svg+xml",
    ".woff2": "font/woff2",
}


def _inside(base: Path, candidate: Path) -> bool:
    try:
        candidate.resolve().relative_to(base.resolve())
        return True
    except ValueError:
        return False


@router.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "OdontoSync",
    }


@router.get("/assets/{asset_path:path}")
def assets(asset_path: str) -> FileResponse:
    """Built assets only: a missing file is a 404, never the SPA index."""
    base = Path(config.STATIC_DIR) / "assets"
    target = base / asset_path
    if not _inside(base, target) or not target.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")

    media_type = ASSET_MEDIA_TYPES.get(target.suffix.lower()) or mimetypes.guess_type(target.name)[0]
    return FileResponse(
        target,
        media_type=media_type or "application/octet-stream",
        headers={"Cache-Control": "public, max-age=31536000"},
    )


def spa_fallback(full_path: str) -> FileResponse:
    """Client-side routes of the SPA: files of the build, otherwise index.html."""
    if full_path.startswith("api/") or full_path == "api":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    base = Path(config.STATIC_DIR)
    candidate = base / full_path
    if full_path and _inside(base, candidate) and candidate.is_file():
        return FileResponse(candidate)

    index = base / "index.html"
    if not index.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return FileResponse(index, media_type="text/html")
