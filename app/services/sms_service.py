import logging

from twilio.rest import Client

from app.config import settings

logger = logging.getLogger(__name__)


class SMSService:
    """Texts booking outcomes to the configured phone number."""

    def __init__(self) -> None:
        self._client: Client | None = None

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
        return self._client

    async def send_sms(self, to_number: str, message: str) -> str | None:
        if not to_number:
            logger.info(f"[SMS skipped, no recipient] {message}")
            return None

        if not settings.twilio_account_sid or not settings.twilio_auth_token:
            logger.info(f"[SMS Mock] To: {to_number}, Message: {message}")
            return "mock_sid"

        try:
            result = self.client.messages.create(
                body=message,
                from_=settings.twilio_phone_number,
                to=to_number,
            )
            return result.sid
        except Exception as e:
            logger.error(f"Error sending SMS: {e}")
            return None

    async def send_booking_confirmation(self, booking_details: str) -> str | None:
        message = f"Tee time booked! {booking_details}"
        return await self.send_sms(settings.user_phone_number, message)

    async def send_booking_failure(self, booking_details: str, reason: str) -> str | None:
        message = f"Unable to book tee time for {booking_details}: {reason}. Will retry next sweep."
        return await self.send_sms(settings.user_phone_number, message)


sms_service = SMSService()
