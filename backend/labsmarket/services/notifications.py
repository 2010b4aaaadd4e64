"""
User-facing notifications for upload outcomes.

The upload core only produces results; this adapter turns each terminal
outcome into exactly one notification and hands it to a Notifier
(logs for the API and CLI, an in-memory list for tests).
"""
import enum
import logging
from dataclasses import dataclass
from typing import List, Protocol

from labsmarket.models.upload import StorageProvider
from labsmarket.services.outcome import UploadOutcome, UploadStage

logger = logging.getLogger(__name__)


class NotificationVariant(str, enum.Enum):
    DEFAULT = "default"
    SUCCESS = "success"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.DEFAULT


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class LoggingNotifier:
    """Writes notifications to the application log."""

    def notify(self, notification: Notification) -> None:
        level = logging.WARNING if notification.variant == NotificationVariant.DESTRUCTIVE else logging.INFO
        logger.log(
            level,
            f"{notification.title}: {notification.description}",
            extra={"event": "notification", "variant": notification.variant.value}
        )


class CollectingNotifier:
    """Keeps notifications in memory."""

    def __init__(self) -> None:
        self.notifications: List[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)


def _provider_label(provider: StorageProvider) -> str:
    return "AWS S3" if provider == StorageProvider.AWS else "OORT Storage"


def _get_success_messages(outcome: UploadOutcome) -> tuple[str, str]:
    """
    Get success notification messages.

    Returns:
        Tuple of (title, description)
    """
    label = _provider_label(outcome.provider)
    if outcome.simulated:
        description = f"{outcome.file_name} uploaded to {label} (simulated mode)."
    else:
        description = f"{outcome.file_name} uploaded to {label}."
    if outcome.points:
        description += f" You earned {outcome.points} points for uploading {outcome.file_name}"
    return "Upload successful", description


def notification_for_outcome(outcome: UploadOutcome) -> Notification:
    """Build the single notification for a terminal outcome."""
    if outcome.stage == UploadStage.COMPLETE:
        title, description = _get_success_messages(outcome)
        return Notification(title, description, NotificationVariant.SUCCESS)

    if outcome.stage == UploadStage.TRACKING:
        return Notification(
            "Upload tracking failed",
            "Your upload was successful, but we couldn't track it in our database.",
            NotificationVariant.DESTRUCTIVE,
        )

    titles = {
        UploadStage.VALIDATION: "File validation failed",
        UploadStage.CONFIGURATION: "Storage not configured",
        UploadStage.CONNECTIVITY: "Connection failed",
        UploadStage.TRANSFER: "Upload failed",
    }
    return Notification(
        titles[outcome.stage],
        outcome.error or "Unknown error",
        NotificationVariant.DESTRUCTIVE,
    )
