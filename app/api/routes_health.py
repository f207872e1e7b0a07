from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.payments import paysafe_client, stripe_client

router = APIRouter(tags=["health"])


def _check_db(db: Session) -> bool:
    db.execute(text("SELECT 1"))
    return True


@router.get("/healthz")
def healthz(db: Annotated[Session, Depends(get_db)]) -> dict[str, str]:
    """Basic liveness probe (cheap)."""
    try:
        _check_db(db)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=503, detail="Database connectivity check failed") from exc
    return {"status": "ok"}


@router.get("/live")
def live() -> dict[str, str]:
    """Liveness endpoint with no dependencies."""
    return {"status": "alive"}


@router.get("/ready")
def ready(db: Annotated[Session, Depends(get_db)]) -> dict[str, object]:
    """Readiness: database reachable; processor clients are reported, not probed."""
    try:
        db_ok = _check_db(db)
    except Exception:  # noqa: BLE001
        db_ok = False
    if not db_ok:
        raise HTTPException(status_code=503, detail={"db": db_ok})
    return {
        "status": "ready",
        "db": db_ok,
        "stripe_client": stripe_client.state.value,
        "paysafe_client": paysafe_client.state.value,
    }
