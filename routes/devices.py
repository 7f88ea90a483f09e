import logging
from typing import List

from fastapi import APIRouter, Depends

import schemas
from container import Container, get_container
from errors import ValidationError
from utils import redact_token

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/push/register-device", response_model=schemas.DeviceTokenResponse)
async def register_device(
    payload: schemas.DeviceRegisterRequest,
    container: Container = Depends(get_container),
):
    user_id = payload.userId.strip()
    token = payload.token.strip()
    if not (user_id and token):
        raise ValidationError("userId and token are required")
    record = await container.require_store().register_token(user_id, token, payload.platform.strip() or "unknown")
    logger.info("[devices] Registered %s for user %s (%s)", redact_token(token), user_id, record.platform)
    return schemas.DeviceTokenResponse.from_record(record)


@router.get("/push/devices", response_model=List[schemas.DeviceTokenResponse])
async def list_devices(userId: str, container: Container = Depends(get_container)):
    records = await container.require_store().list_tokens(userId)
    return [schemas.DeviceTokenResponse.from_record(r) for r in records]


@router.delete("/push/devices/{token}")
async def deactivate_device(token: str, container: Container = Depends(get_container)):
    await container.require_store().deactivate_token(token, "MANUAL")
    return {"deactivated": redact_token(token)}
