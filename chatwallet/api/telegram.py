"""
Telegram webhook endpoint.

Receives updates pushed by the Bot API and hands them to the bot. The
response is always 200 once the secret checks out, so Telegram never
redelivers an update the bot already saw.
"""

import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import BaseModel

from ..config import settings
from ..types.telegram import Update

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/telegram")


class WebhookResponse(BaseModel):
    ok: bool
    message: Optional[str] = None


def _secret_matches(received: Optional[str]) -> bool:
    expected = settings.telegram_webhook_secret
    if not expected:
        return True
    return hmac.compare_digest((received or "").encode(), expected.encode())


@router.post("/webhook", response_model=WebhookResponse)
async def telegram_webhook(
    update: Dict[str, Any],
    request: Request,
    x_telegram_bot_api_secret_token: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    if not _secret_matches(x_telegram_bot_api_secret_token):
        logger.warning("Rejected webhook call with a bad secret token")
        raise HTTPException(status_code=401, detail="Invalid secret token")

    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Bot is not running")

    try:
        parsed = Update.model_validate(update)
    except ValueError as e:
        logger.warning(f"Invalid Telegram update: {e}")
        return WebhookResponse(ok=False, message="invalid update")

    await runtime.bot.handle_update(parsed)
    return WebhookResponse(ok=True)
