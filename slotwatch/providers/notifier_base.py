from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class NotificationResult:
    success: bool
    message_id: str | None = None
    error_message: str | None = None


class Notifier(ABC):
    """Abstract base class for operator notification channels."""

    @abstractmethod
    async def send(self, subject: str, body: str) -> NotificationResult:
        """
        Deliver one message.

        Args:
            subject: Short summary line.
            body: Full message text.

        Returns:
            NotificationResult with the transport's message id.

        Raises:
            NotificationTransportError: The transport rejected the message.
        """
        pass


class LogNotifier(Notifier):
    """Notifier that only records messages; used for dry runs and tests."""

    def __init__(self) -> None:
        self.sent_messages: list[dict[str, str]] = []

    async def send(self, subject: str, body: str) -> NotificationResult:
        self.sent_messages.append({"subject": subject, "body": body})
        print(f"[Notify Mock] {subject}\n{body}")
        return NotificationResult(success=True, message_id=f"mock_{len(self.sent_messages)}")
