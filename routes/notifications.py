import logging

from fastapi import APIRouter, Depends

import schemas
from container import Container, get_container
from dispatcher import NotificationPayload
from errors import ValidationError
from recipients import Group, recipient_from_fields

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/send-notification", response_model=schemas.DeliveryReportResponse)
async def send_notification(
    payload: schemas.NotificationRequest,
    container: Container = Depends(get_container),
):
    notification = NotificationPayload(
        title=payload.title, body=payload.body, data=payload.data, image_url=payload.imageUrl
    )
    notification.validate()
    spec = recipient_from_fields(
        tokens=payload.tokens,
        fcm_token=payload.fcmToken,
        user_id=payload.userId,
        user_email=payload.userEmail,
        group_name=payload.groupName,
    )
    if spec is None:
        raise ValidationError(
            "Missing FCM token(s): provide either tokens (array), fcmToken (single), "
            "userId/userEmail or groupName"
        )
    logger.info("[notify] %s request, title=%r", type(spec).__name__, notification.title)
    report = await container.require_dispatcher().dispatch(spec, notification)
    return schemas.DeliveryReportResponse.from_report(
        report, group_name=spec.name if isinstance(spec, Group) else None
    )


@router.post("/api/send-group-notification", response_model=schemas.DeliveryReportResponse)
async def send_group_notification(
    payload: schemas.GroupNotificationRequest,
    container: Container = Depends(get_container),
):
    group_name = (payload.groupName or "").strip()
    if not group_name:
        raise ValidationError("Group name is required")
    notification = NotificationPayload(
        title=payload.title, body=payload.body, data=payload.data, image_url=payload.imageUrl
    )
    notification.validate()
    logger.info("[notify] Group %r, title=%r, has_image=%s", group_name, notification.title, bool(payload.imageUrl))
    report = await container.require_dispatcher().dispatch(Group(group_name), notification)
    return schemas.DeliveryReportResponse.from_report(
        report,
        message=f"Sent {report.success_count} of {report.total_tokens} notifications to group {group_name}",
        group_name=group_name,
    )
