"""Config and app-version endpoints shared by all three apps."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.enums import AppId
from services.app_config import ConfigSnapshot, load_config_snapshot, check_alert

router = APIRouter()


async def get_config_snapshot(db: AsyncSession = Depends(get_db)) -> ConfigSnapshot:
    """One immutable config view per request."""
    return await load_config_snapshot(db)


@router.get("/config")
async def get_config(config: ConfigSnapshot = Depends(get_config_snapshot)):
    return config.public_config()


@router.get("/check-alert")
async def check_app_alert(
    app: AppId,
    version_code: int | None = Query(None, ge=0),
    config: ConfigSnapshot = Depends(get_config_snapshot),
):
    return check_alert(config, app, version_code)
