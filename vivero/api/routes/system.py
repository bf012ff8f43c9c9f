"""Service status endpoint."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter

router = APIRouter()


@router.get("/status")
async def get_status() -> dict[str, object]:
    return {"ok": True, "timestamp": datetime.now(UTC).isoformat()}
