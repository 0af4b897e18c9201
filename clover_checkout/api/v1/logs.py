"""Log viewer endpoints: filtered pages, raw download and clear"""

from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from clover_checkout.api.dependencies import get_log_store
from clover_checkout.api.v1.schemas import LogsResponse
from clover_checkout.infrastructure.observability.log_store import LogStore

router = APIRouter()


@router.get("/logs", response_model=LogsResponse)
def get_logs(
    level: Optional[str] = Query(None, description="DEBUG, INFO, WARNING, ERROR or CRITICAL"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    log_store: LogStore = Depends(get_log_store),
):
    """Newest records first"""
    try:
        return log_store.get_logs(level=level, date_from=date_from, date_to=date_to, page=page, per_page=per_page)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/logs/download", response_class=PlainTextResponse)
def download_logs(log_store: LogStore = Depends(get_log_store)):
    filename = f"clover-checkout-logs-{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.log"
    return PlainTextResponse(
        log_store.download(), headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.post("/logs/clear")
def clear_logs(log_store: LogStore = Depends(get_log_store)):
    backup = log_store.clear()
    return {"success": True, "backup": str(backup) if backup else None}
