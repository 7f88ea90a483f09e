import json
import logging

import requests
from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from utils import UpstreamError, forward_to_chat_service

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_json_body(request: Request):
    raw = await request.body()
    if not raw:
        return None
    return json.loads(raw)


async def _proxy(request: Request, path: str) -> JSONResponse:
    try:
        body = await _read_json_body(request)
    except ValueError:
        return JSONResponse({"error": "Invalid JSON in request body"}, status_code=400)
    # {} and [] are forwarded; only an absent or falsy scalar body is rejected
    if body is None or (not body and not isinstance(body, (dict, list))):
        return JSONResponse({"error": "Request body is required"}, status_code=400)
    try:
        data = await run_in_threadpool(forward_to_chat_service, path, body)
    except UpstreamError as e:
        return JSONResponse({"error": str(e), "status": e.status}, status_code=e.status)
    except (requests.RequestException, ValueError) as e:
        logger.error("[proxy] %s failed: %s", path, e)
        return JSONResponse({"error": "Internal server error", "message": str(e)}, status_code=500)
    return JSONResponse(data)


@router.post("/api/proxy-ai")
async def proxy_ai(request: Request):
    return await _proxy(request, "chat")


@router.post("/api/proxy-image")
async def proxy_image(request: Request):
    return await _proxy(request, "generate")
