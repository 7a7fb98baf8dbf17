# barberbook/core/monitoring.py
"""Health checks"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session
import redis

from barberbook.config.database import get_db
from barberbook.config.redis import get_redis
from barberbook.config.settings import get_settings

health_router = APIRouter()


@health_router.get("")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": get_settings().APP_NAME}


@health_router.get("/detailed")
def detailed_health_check(db: Session = Depends(get_db)):
    """Database check, plus Redis when the change feed publishes there"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "disabled",
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    if get_settings().CHANGE_FEED_REDIS_ENABLED:
        try:
            get_redis().ping()
            checks["redis"] = "healthy"
        except redis.RedisError as e:
            checks["redis"] = f"unhealthy: {str(e)}"

    if all(status in ("healthy", "disabled") for status in checks.values()):
        checks["overall"] = "healthy"
    else:
        checks["overall"] = "degraded"

    return checks
