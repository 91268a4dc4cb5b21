# services/log_notifier/src/webhook.py

import logging
from datetime import datetime

import requests

ALERT_THRESHOLD = 50
ALERT_PREFIX = "@everyone"
DEFAULT_TIMEOUT = 30


class WebhookError(Exception):
    """Raised when the webhook upload could not be built, sent or was rejected."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


def compose_message(count: int) -> str:
    message = f"log length: {count}"
    if count >= ALERT_THRESHOLD:
        message = f"{ALERT_PREFIX} {message}"
    return message


def generate_filename(now: datetime | None = None) -> str:
    """Attachment name from local wall-clock time, e.g. errlogs-2024-3-7-9-5-2.txt"""
    now = now or datetime.now()
    return (
        f"errlogs-{now.year}-{now.month}-{now.day}-"
        f"{now.hour}-{now.minute}-{now.second}.txt"
    )


class WebhookUploader:
    """Posts an attachment plus a status line to a chat webhook as multipart/form-data."""

    def __init__(self, webhook_url, timeout=DEFAULT_TIMEOUT, session=None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_request(self, message: str, body) -> requests.PreparedRequest:
        content = body.read() if hasattr(body, 'read') else body
        if isinstance(content, str):
            content = content.encode('utf-8')

        # Part order matters: attachment first, then the status field.
        files = [
            ('file', (generate_filename(), content, 'application/octet-stream')),
            ('content', (None, message)),
        ]
        try:
            return requests.Request('POST', self.webhook_url, files=files).prepare()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise WebhookError(f"failed to build webhook request: {e}") from e

    def post(self, message: str, body) -> requests.Response:
        """
        Send one upload. No retries.

        Raises:
            WebhookError: on request construction or transport failure, or
                when the webhook answers with a status code >= 400.
        """
        prepared = self.build_request(message, body)
        logging.info(f"Posting {len(prepared.body)} bytes to webhook: {message}")

        try:
            with self.session.send(prepared, timeout=self.timeout) as response:
                response_text = response.text
                if response.status_code >= 400:
                    raise WebhookError(
                        f"webhook returned HTTP {response.status_code}: {response_text}",
                        status_code=response.status_code,
                    )
        except requests.exceptions.RequestException as e:
            raise WebhookError(f"failed to send webhook request: {e}") from e

        logging.info(f"Webhook accepted upload (HTTP {response.status_code}).")
        return response
