from fastapi import APIRouter, Request
from sqlalchemy import text

from lemonade.api.deps import DbSession
from lemonade.core.exceptions import LemonadeError

router = APIRouter()


class ServiceNotReady(LemonadeError):
    status_code = 503
    default_message = "Service not ready"


@router.get("/health", summary="Health check")
async def health_check(request: Request) -> dict:
    """Responds immediately; reports whether startup database init succeeded."""
    return {
        "status": "ok",
        "database_ready": getattr(request.app.state, "db_ready", False),
    }


@router.get("/ready", summary="Readiness check")
async def readiness_check(db: DbSession) -> dict:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        raise ServiceNotReady() from exc
    return {"status": "ready"}
