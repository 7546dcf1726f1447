# carebook/routers/health.py
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from datetime import datetime, timezone
import logging

from .. import schemas
from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health Checks"],
    responses={404: {"description": "Not found"}},
)


@router.get("", response_model=schemas.HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """Liveness plus a database ping. 503 when the store cannot be reached."""
    now = datetime.now(timezone.utc)
    try:
        db.execute(text("SELECT 1"))
    except DBAPIError as e:
        logger.error(f"Health check database ping failed: {e}")
        body = schemas.HealthResponse(status="degraded", database="unreachable", timestamp=now)
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body.model_dump(mode="json"))
    return schemas.HealthResponse(status="ok", database="ok", timestamp=now)
