# backend/switchboard/api/telephony.py
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import Optional
import logging
import traceback

from switchboard.db.database import get_db
from switchboard.models.models import User
from switchboard.schemas.schemas import (
    TelephonyCredentialsUpdate,
    TelephonyCredentialsResponse,
    VoiceTokenRequest,
    VoiceTokenResponse,
    MessageResponse
)
from switchboard.auth.auth import get_current_user, require_admin_user
from switchboard.core.exceptions import Forbidden
from switchboard.core.presence_hub import PresenceHub, get_presence_hub
from switchboard.security.audit_logger import audit_logger
from switchboard.services.telephony_service import telephony_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telephony", tags=["telephony"])


@router.get("/credentials", response_model=Optional[TelephonyCredentialsResponse])
async def get_credentials(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin_user)
):
    """Stored credentials with the secret masked, or null when not configured."""
    return await telephony_service.get_masked_credentials(db)


@router.post("/credentials", response_model=MessageResponse)
async def save_credentials(
    credentials: TelephonyCredentialsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin_user)
):
    """Replace the voice API credentials (admin only)."""
    saved = await telephony_service.set_credentials(db, credentials.model_dump())
    audit_logger.log_admin_action(
        current_user.id, "telephony_credentials_saved",
        details={"account_sid": saved.account_sid, "phone_number": saved.phone_number}
    )
    return MessageResponse(message="Telephony credentials saved successfully")


@router.post("/token", response_model=VoiceTokenResponse)
async def get_voice_token(
    token_request: Optional[VoiceTokenRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Mint a device token. The identity is always the caller's extension so a
    user can only register as themselves.
    """
    identity = (token_request.identity if token_request else None) or current_user.extension
    if identity != current_user.extension:
        raise Forbidden("Identity must match your extension")

    token = await telephony_service.issue_access_token(db, identity)
    return VoiceTokenResponse(token=token, identity=identity)


@router.post("/voice")
async def voice_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    hub: PresenceHub = Depends(get_presence_hub)
):
    """Vendor voice webhook. Always answers with TwiML, even on failure."""
    try:
        form_data = await request.form()
        call_sid = form_data.get("CallSid")
        from_number = form_data.get("From")
        to_number = form_data.get("To")
        logger.info(f"📞 Voice webhook for call {call_sid}: {from_number} -> {to_number}")

        result = await db.execute(
            select(User.id, User.extension).where(User.is_active == True).order_by(User.id)
        )
        active = result.all()
        connected = await hub.connected_user_ids()
        ring = [extension for user_id, extension in active if user_id in connected]
        if not ring:
            ring = [extension for _, extension in active]

        twiml = await telephony_service.build_voice_response(db, from_number, to_number, ring)
        return Response(content=twiml, media_type="application/xml")

    except Exception as e:
        logger.error(f"❌ Error handling voice webhook: {e}")
        logger.error(f"❌ Traceback: {traceback.format_exc()}")
        return Response(content=telephony_service.error_response(), media_type="application/xml")
