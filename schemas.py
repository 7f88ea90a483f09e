from pydantic import BaseModel, ConfigDict
from typing import Any, Optional, List

from dispatcher import DeliveryReport
from token_store import DeviceRecord
from utils import redact_token


# ---- Push Notifications ----
class NotificationRequest(BaseModel):
    # Recipient fields, first non-empty wins: tokens > fcmToken > userId > userEmail > groupName
    fcmToken: Optional[str] = None
    tokens: Optional[List[str]] = None
    userId: Optional[str] = None
    userEmail: Optional[str] = None
    groupName: Optional[str] = None
    # title/body stay optional here so a missing field is a 400, not a 422
    title: Optional[str] = None
    body: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    imageUrl: Optional[str] = None
    model_config = ConfigDict(extra="ignore")


class GroupNotificationRequest(BaseModel):
    groupName: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    imageUrl: Optional[str] = None
    model_config = ConfigDict(extra="ignore")


class DeliveryResultResponse(BaseModel):
    token: str
    success: bool
    messageId: Optional[str] = None
    error: Optional[str] = None
    errorCode: Optional[str] = None


class UserResultResponse(BaseModel):
    userId: str
    email: str = "unknown"
    name: str = "unknown"
    tokenCount: int
    hasToken: bool


class DeliveryReportResponse(BaseModel):
    success: bool
    message: str
    totalTokens: int
    successCount: int
    failureCount: int
    results: List[DeliveryResultResponse]
    groupName: Optional[str] = None
    totalUsers: Optional[int] = None
    userResults: Optional[List[UserResultResponse]] = None

    @classmethod
    def from_report(cls, report: DeliveryReport, message: str = "Notification sent successfully",
                    group_name: Optional[str] = None) -> "DeliveryReportResponse":
        user_results = None
        if group_name is not None:
            user_results = [
                UserResultResponse(
                    userId=m.user_id,
                    email=m.email or "unknown",
                    name=m.name or "unknown",
                    tokenCount=m.token_count,
                    hasToken=m.has_token,
                )
                for m in report.members
            ]
        return cls(
            success=report.success,
            message=message,
            totalTokens=report.total_tokens,
            successCount=report.success_count,
            failureCount=report.failure_count,
            results=[
                DeliveryResultResponse(
                    token=r.token,
                    success=r.success,
                    messageId=r.message_id,
                    error=r.error,
                    errorCode=r.error_code,
                )
                for r in report.results
            ],
            groupName=group_name,
            totalUsers=len(user_results) if user_results is not None else None,
            userResults=user_results,
        )


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[Any] = None


# ---- Devices ----
class DeviceRegisterRequest(BaseModel):
    userId: str
    token: str     # FCM device token
    platform: str = "unknown"  # 'android' | 'ios' | 'web'


class DeviceTokenResponse(BaseModel):
    userId: str
    token: str
    platform: str
    active: bool
    deactivatedReason: Optional[str] = None

    @classmethod
    def from_record(cls, record: DeviceRecord) -> "DeviceTokenResponse":
        return cls(
            userId=record.user_id,
            token=redact_token(record.token),
            platform=record.platform,
            active=record.active,
            deactivatedReason=record.deactivated_reason,
        )


# ---- Email relay ----
class BoosterEmailRequest(BaseModel):
    coachEmail: Optional[str] = None
    userName: Optional[str] = None
    userEmail: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None


class BoosterEmailResponse(BaseModel):
    success: bool
    messageId: Optional[str] = None
    email: Optional[str] = None
