"""
Notification delivery for transcoder.

Sends one message per processed file that reached a result:
- Telegram bot messages (when a bot key and chat id are configured)
- Desktop notifications via notify-send (libnotify) with plyer as fallback

Delivery is fire-and-forget. A failing sink is logged and never changes the
outcome of the file it reports on.
"""

import shutil
import subprocess
from typing import List, Literal, Optional

import httpx
from loguru import logger

from transcoder.models import FileCandidate, Metadata, ProgressReport, ResultKind
from transcoder.ui import bytes_human_readable

TELEGRAM_API_URL = "https://api.telegram.org"


# Check for notification capabilities
def _has_notify_send() -> bool:
    """Check if notify-send is available."""
    return shutil.which("notify-send") is not None


def _has_plyer() -> bool:
    """Check if plyer is available."""
    try:
        from plyer import notification  # noqa: F401
        return True
    except ImportError:
        return False


NOTIFY_SEND_AVAILABLE = _has_notify_send()
PLYER_AVAILABLE = _has_plyer()


def format_message(
    kind: ResultKind,
    candidate: Optional[FileCandidate] = None,
    original: Optional[Metadata] = None,
    result_metadata: Optional[Metadata] = None,
    report: Optional[ProgressReport] = None,
) -> str:
    """Build the human readable text for a file result."""
    name = candidate.path.name if candidate is not None else "file"

    new_size: Optional[int] = None
    if result_metadata is not None:
        new_size = result_metadata.size_bytes
    elif report is not None:
        new_size = report.total_size

    if kind is ResultKind.REPLACED:
        message = f"Replaced {name} with transcoded version"
        if new_size is not None and original is not None:
            message += f": {bytes_human_readable(new_size)} < {bytes_human_readable(original.size_bytes)}"
        return message

    if kind is ResultKind.KEPT_ORIGINAL:
        message = f"Kept original {name}"
        if new_size is not None and original is not None:
            message += f": {bytes_human_readable(original.size_bytes)} <= {bytes_human_readable(new_size)}"
        return message

    return f"Failed to transcode {name}"


class NotificationSink:
    """Something that can deliver a text message."""

    name = "sink"

    def send(self, title: str, message: str, kind: ResultKind) -> None:
        raise NotImplementedError


class TelegramSink(NotificationSink):
    """Telegram Bot API sendMessage."""

    name = "telegram"

    def __init__(self, bot_key: str, chat_id: int, timeout: float = 10.0, client: Optional[httpx.Client] = None):
        self.bot_key = bot_key
        self.chat_id = chat_id
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(base_url=TELEGRAM_API_URL, timeout=self.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def send(self, title: str, message: str, kind: ResultKind) -> None:
        response = self._get_client().post(
            f"/bot{self.bot_key}/sendMessage",
            json={"chat_id": self.chat_id, "text": f"{title}\n{message}"},
        )
        response.raise_for_status()


class DesktopSink(NotificationSink):
    """
    Desktop notification.

    Tries notify-send first (Linux standard), then falls back to plyer
    if available.
    """

    name = "desktop"

    def __init__(self, timeout: int = 10):
        self.timeout = timeout

    def send(self, title: str, message: str, kind: ResultKind) -> None:
        urgency: Literal["low", "normal", "critical"] = "critical" if kind is ResultKind.ERROR else "normal"
        icon = "dialog-error" if kind is ResultKind.ERROR else "dialog-information"

        if NOTIFY_SEND_AVAILABLE:
            cmd = [
                "notify-send",
                "--urgency", urgency,
                "--app-name", "transcoder",
                "--icon", icon,
                "--expire-time", str(self.timeout * 1000),  # Convert to ms
                title,
                message,
            ]
            subprocess.run(cmd, check=True, capture_output=True, timeout=5)
            return

        if PLYER_AVAILABLE:
            from plyer import notification

            notification.notify(title=title, message=message, app_name="transcoder", timeout=self.timeout)
            return

        raise RuntimeError("no desktop notification backend available")


class Notifier:
    """Fans a file result out to every configured sink."""

    def __init__(self, sinks: Optional[List[NotificationSink]] = None):
        self.sinks: List[NotificationSink] = list(sinks or [])

    def notify_end(
        self,
        result_metadata: Optional[Metadata],
        report: Optional[ProgressReport],
        kind: ResultKind,
        candidate: Optional[FileCandidate] = None,
        original: Optional[Metadata] = None,
    ) -> None:
        """Deliver a file result. Never raises."""
        if not self.sinks:
            return
        title = "transcoder - Error" if kind is ResultKind.ERROR else "transcoder"
        message = format_message(kind, candidate, original, result_metadata, report)
        for sink in self.sinks:
            try:
                sink.send(title, message, kind)
            except Exception as e:
                logger.warning(f"Failed to send {sink.name} notification: {e}")

    def close(self) -> None:
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                close()


def build_notifier(tg_bot_key: str = "", tg_chat_id: int = 0, desktop: bool = False) -> Notifier:
    """Create a Notifier with the sinks enabled by configuration."""
    sinks: List[NotificationSink] = []
    if tg_bot_key and tg_chat_id:
        sinks.append(TelegramSink(tg_bot_key, tg_chat_id))
    if desktop:
        sinks.append(DesktopSink())
    return Notifier(sinks)


def check_notification_support() -> dict:
    """
    Check available desktop notification methods.

    Returns:
        Dict with 'notify_send' and 'plyer' boolean keys indicating availability.
    """
    return {
        "notify_send": NOTIFY_SEND_AVAILABLE,
        "plyer": PLYER_AVAILABLE,
        "any": NOTIFY_SEND_AVAILABLE or PLYER_AVAILABLE,
    }
