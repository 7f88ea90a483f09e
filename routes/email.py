import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

import schemas
from utils import BOOSTER_DEFAULT_TITLE, booster_default_text, send_roamjet_email

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/send-booster-email", response_model=schemas.BoosterEmailResponse)
def send_booster_email(payload: schemas.BoosterEmailRequest):
    coach_email = (payload.coachEmail or "").strip()
    if not coach_email:
        return JSONResponse({"error": "Coach email is required"}, status_code=400)
    title = payload.title or BOOSTER_DEFAULT_TITLE
    text = payload.message or booster_default_text(payload.userName, payload.userEmail)
    logger.info("[email] Sending booster request email to %s", coach_email)
    res = send_roamjet_email(coach_email, title, text)
    if not res["ok"]:
        return JSONResponse({"success": False, "error": res["error"] or "Failed to send email"}, status_code=500)
    return schemas.BoosterEmailResponse(success=True, messageId=res["message_id"], email=coach_email)
