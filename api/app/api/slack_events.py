from fastapi import APIRouter, Depends, HTTPException, Request
import hashlib
import hmac
import json
import logging
import time

from common.exceptions import BridgeException, MappingNotFound
from app.config import settings
from app.services.bridge_service import BridgeService, get_bridge_service

router = APIRouter()
logger = logging.getLogger(__name__)

# Requests older than this are rejected as possible replays
MAX_REQUEST_AGE_SECONDS = 60 * 5


def verify_slack_signature(signing_secret: str, timestamp: str, body: bytes, signature: str) -> bool:
    """Check an X-Slack-Signature header against the raw request body"""
    if not signing_secret or not timestamp or not signature:
        return False
    try:
        if abs(time.time() - int(timestamp)) > MAX_REQUEST_AGE_SECONDS:
            return False
    except ValueError:
        return False

    basestring = f"v0:{timestamp}:".encode() + body
    expected = "v0=" + hmac.new(signing_secret.encode(), basestring, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


@router.post("/events")
async def slack_events(request: Request, bridge: BridgeService = Depends(get_bridge_service)):
    """Slack Events API receiver: thread replies become tmux input"""
    body = await request.body()
    if not verify_slack_signature(
        settings.slack_signing_secret or "",
        request.headers.get("X-Slack-Request-Timestamp", ""),
        body,
        request.headers.get("X-Slack-Signature", ""),
    ):
        raise HTTPException(status_code=401, detail="Invalid Slack signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    if payload.get("type") == "url_verification":
        return {"challenge": payload.get("challenge")}

    event = payload.get("event") or {}
    if event.get("type") != "message" or event.get("bot_id") or event.get("subtype"):
        return {"ok": True}

    thread_ts = event.get("thread_ts")
    text = (event.get("text") or "").strip()
    if not thread_ts or not text:
        return {"ok": True}

    try:
        key = await bridge.submit(thread_ts, text)
        logger.info(f"Slack message in thread {thread_ts} started execution {key}")
    except MappingNotFound:
        logger.debug(f"Ignoring message in unmapped thread {thread_ts}")
    except BridgeException as e:
        # Slack retries non-2xx responses, so failures are acknowledged and logged
        logger.error(f"Failed to handle Slack message in thread {thread_ts}: {e}")

    return {"ok": True}
