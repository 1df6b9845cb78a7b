# backend/switchboard/services/telephony_service.py
"""
Telephony service: the voice API credential vault, device access tokens and
the TwiML answered to the vendor's voice webhook.
"""

import logging
from typing import Optional, Dict, Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete
from twilio.jwt.access_token import AccessToken
from twilio.jwt.access_token.grants import VoiceGrant
from twilio.twiml.voice_response import VoiceResponse

from switchboard.core.config import settings
from switchboard.core.exceptions import NotConfigured, ValidationError
from switchboard.models.models import TelephonyCredentials

logger = logging.getLogger(__name__)

MASKED_SECRET = "********"
MASK_CHARACTERS = {"*", "•"}
CLIENT_PREFIX = "client:"


class TelephonyService:
    """Service for voice credentials and call routing responses"""

    async def get_credentials(self, db: AsyncSession) -> Optional[TelephonyCredentials]:
        """Return the stored credentials row, if any."""
        result = await db.execute(
            select(TelephonyCredentials).order_by(TelephonyCredentials.id.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_masked_credentials(self, db: AsyncSession) -> Optional[Dict[str, Any]]:
        """Credentials as shown to administrators: the secret never leaves the server."""
        credentials = await self.get_credentials(db)
        if credentials is None:
            return None

        return {
            "account_sid": credentials.account_sid,
            "api_key": credentials.api_key,
            "api_secret": MASKED_SECRET,
            "app_sid": credentials.app_sid,
            "phone_number": credentials.phone_number,
            "updated_at": credentials.updated_at,
        }

    async def set_credentials(self, db: AsyncSession, data: Dict[str, str]) -> TelephonyCredentials:
        """
        Replace the singleton credentials row.

        Full-set semantics: every field comes from ``data``. The previous row
        is deleted and the new one inserted in the same transaction, so
        readers see either the old or the new row and never zero or two.
        """
        api_secret = data.get("api_secret") or ""
        if self.is_masked(api_secret):
            raise ValidationError(errors=[{
                "field": "apiSecret",
                "message": "Enter the real API secret; the masked value cannot be saved"
            }])

        try:
            await db.execute(delete(TelephonyCredentials))
            credentials = TelephonyCredentials(
                account_sid=data["account_sid"],
                api_key=data["api_key"],
                api_secret=api_secret,
                app_sid=data["app_sid"],
                phone_number=data["phone_number"],
            )
            db.add(credentials)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await db.refresh(credentials)
        logger.info(f"✅ Telephony credentials replaced (account {credentials.account_sid})")
        return credentials

    @staticmethod
    def is_masked(secret: str) -> bool:
        """True for empty secrets and values made only of mask characters."""
        stripped = secret.strip()
        return not stripped or set(stripped) <= MASK_CHARACTERS

    async def issue_access_token(self, db: AsyncSession, identity: str) -> str:
        """Mint a voice access token for ``identity``."""
        credentials = await self.get_credentials(db)
        if credentials is None:
            raise NotConfigured()

        token = AccessToken(
            credentials.account_sid,
            credentials.api_key,
            credentials.api_secret,
            identity=identity
        )
        token.add_grant(VoiceGrant(
            outgoing_application_sid=credentials.app_sid,
            incoming_allow=True
        ))

        jwt_token = token.to_jwt()
        if isinstance(jwt_token, bytes):
            jwt_token = jwt_token.decode("utf-8")

        logger.info(f"📞 Issued voice token for identity {identity}")
        return jwt_token

    async def build_voice_response(
        self,
        db: AsyncSession,
        from_number: Optional[str],
        to_number: Optional[str],
        ring_identities: Iterable[str]
    ) -> str:
        """
        TwiML for the voice webhook.

        Calls placed from a registered device (``From`` is ``client:<ext>``)
        dial the ``To`` number. Anything else is an inbound call and rings
        every identity in ``ring_identities``.
        """
        if from_number and from_number.startswith(CLIENT_PREFIX) and to_number:
            credentials = await self.get_credentials(db)
            caller_id = credentials.phone_number if credentials else settings.VOICE_CALLER_ID_FALLBACK
            return self.build_outbound_response(to_number, caller_id)

        return self.build_inbound_response(ring_identities)

    def build_inbound_response(self, identities: Iterable[str]) -> str:
        """Ring every given device identity at once; the first answer wins."""
        identities = list(identities)
        response = VoiceResponse()

        if not identities:
            response.say("Sorry, no one is available to take your call. Please try again later.")
            response.hangup()
            return str(response)

        dial = response.dial(timeout=settings.VOICE_DIAL_TIMEOUT)
        for identity in identities:
            dial.client(identity)

        logger.info(f"📞 Ringing {len(identities)} device(s) for inbound call")
        return str(response)

    def build_outbound_response(self, to_number: str, caller_id: Optional[str]) -> str:
        response = VoiceResponse()
        if caller_id:
            dial = response.dial(caller_id=caller_id, timeout=settings.VOICE_DIAL_TIMEOUT)
        else:
            dial = response.dial(timeout=settings.VOICE_DIAL_TIMEOUT)

        if to_number.startswith(CLIENT_PREFIX):
            dial.client(to_number[len(CLIENT_PREFIX):])
        else:
            dial.number(to_number)
        return str(response)

    def error_response(self, message: str = "Sorry, there was an error. Please try again later.") -> str:
        response = VoiceResponse()
        response.say(message)
        response.hangup()
        return str(response)


# Singleton instance
telephony_service = TelephonyService()
