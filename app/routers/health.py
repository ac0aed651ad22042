from fastapi import APIRouter, HTTPException

from app.core.db import check_database_connection

router = APIRouter()


@router.get("/healthz", summary="Health check")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz/db", summary="Database connectivity check")
async def database_health_check() -> dict[str, str]:
    if not await check_database_connection():
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {"status": "ok"}
