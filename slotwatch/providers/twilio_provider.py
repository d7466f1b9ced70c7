from twilio.rest import Client

from slotwatch.errors import NotificationTransportError
from slotwatch.providers.notifier_base import NotificationResult, Notifier

MAX_MESSAGE_LENGTH = 1600


class TwilioNotifier(Notifier):
    """Twilio implementation of the notifier interface.

    Supports both SMS and WhatsApp channels. WhatsApp uses the same Twilio
    Messages API but with a 'whatsapp:' prefix on phone numbers.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        to_number: str,
        channel: str = "sms",
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.to_number = to_number
        self.channel = channel
        self._client: Client | None = None

    @property
    def client(self) -> Client:
        """Lazily initialize and return the Twilio client."""
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    @property
    def is_whatsapp(self) -> bool:
        return self.channel.lower() == "whatsapp"

    @staticmethod
    def normalize_phone_number(phone_number: str) -> str:
        """Strip the 'whatsapp:' prefix if present."""
        if phone_number.startswith("whatsapp:"):
            return phone_number[9:]  # len("whatsapp:") == 9
        return phone_number

    def _format_phone_for_channel(self, phone_number: str) -> str:
        normalized = self.normalize_phone_number(phone_number)
        if self.is_whatsapp:
            return f"whatsapp:{normalized}"
        return normalized

    async def send(self, subject: str, body: str) -> NotificationResult:
        """
        Send the subject and body as one SMS or WhatsApp message.

        Without credentials the message is printed instead, as in development.
        """
        message = f"{subject}\n{body}"[:MAX_MESSAGE_LENGTH]
        channel = "WhatsApp" if self.is_whatsapp else "SMS"

        if not self.account_sid or not self.auth_token:
            print(f"[{channel} Mock] To: {self.to_number}, Message: {message}")
            return NotificationResult(success=True, message_id="mock_sid")

        try:
            result = self.client.messages.create(
                body=message,
                from_=self._format_phone_for_channel(self.from_number),
                to=self._format_phone_for_channel(self.to_number),
            )
        except Exception as e:
            raise NotificationTransportError(f"Error sending {channel}: {e}") from e
        return NotificationResult(success=True, message_id=result.sid)
