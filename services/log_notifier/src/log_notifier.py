# services/log_notifier/src/log_notifier.py

import io
import logging
import os

from google.api_core import exceptions as google_exceptions
from google.cloud import storage

from services.log_notifier.src.records import RecordDecoder, extract_text
from services.log_notifier.src.webhook import WebhookError, WebhookUploader, compose_message, DEFAULT_TIMEOUT

# ———————————————————————————————
# Configuration
# ———————————————————————————————
gcp_project_id  = os.getenv('gcp_project_id')
webhook_url     = os.getenv('webhook_url') or os.getenv('WEBHOOK_URL')
webhook_timeout = os.getenv('webhook_timeout')

# ———————————————————————————————
# Logging setup (quiet 3rd‑party noise)
# ———————————————————————————————
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(levelname)s [%(filename)s:%(lineno)d] - %(message)s",
    datefmt='%Y-%m-%d %H:%M:%S'
)
for logger_name in ["google.api_core", "google.auth", "google.cloud", "urllib3", "requests"]:
    logging.getLogger(logger_name).setLevel(logging.WARNING)

# The endpoint is not validated here; a missing value fails at send time.
if not webhook_url:
    logging.warning("webhook_url environment variable is not set; uploads will fail.")


def parse_timeout(raw, default=DEFAULT_TIMEOUT) -> float:
    """Seconds for the webhook POST; falls back to the default on unset or invalid values."""
    if raw is None or not str(raw).strip():
        return float(default)
    try:
        timeout = float(raw)
    except ValueError:
        logging.warning(f"Invalid webhook_timeout '{raw}'; using {default}s.")
        return float(default)
    if not timeout > 0:
        logging.warning(f"Non-positive webhook_timeout '{raw}'; using {default}s.")
        return float(default)
    return timeout


webhook_timeout = parse_timeout(webhook_timeout)

# ———————————————————————————————
# Global clients
# ———————————————————————————————
storage_client = None
uploader = WebhookUploader(webhook_url, timeout=webhook_timeout)


def get_storage_client():
    """Lazily create the GCS client and reuse it across invocations."""
    global storage_client
    if storage_client is None:
        storage_client = storage.Client(project=gcp_project_id)
        logging.info("GCS client initialized.")
    return storage_client


# ———————————————————————————————
# Pipeline
# ———————————————————————————————
def notify_log_export(bucket_name: str, object_name: str, webhook: WebhookUploader, client=None) -> bool:
    """
    Read a log export object, collect its payload text and post it to the webhook.

    Every failure is logged and absorbed so the caller never sees an error and
    the platform never redelivers an object that was partly processed.
    Returns True only when the webhook accepted the upload.
    """
    gcs_uri = f"gs://{bucket_name}/{object_name}"
    logging.info(f"Processing file: {gcs_uri}")

    try:
        client = client or get_storage_client()
    except Exception as e:
        logging.error(f"Failed to initialize GCS client: {e}", exc_info=True)
        return False

    text = io.StringIO()
    try:
        blob = client.bucket(bucket_name).blob(object_name)
        with blob.open("rb") as stream:
            decoder = RecordDecoder(stream)
            for record in decoder:
                extract_text(record, text)
    except google_exceptions.NotFound:
        logging.error(f"Log export object not found: {gcs_uri}")
        return False
    except Exception as e:
        logging.error(f"Failed to read {gcs_uri}: {e}", exc_info=True)
        return False

    message = compose_message(decoder.records_seen)
    logging.info(f"Read {decoder.records_seen} records from {gcs_uri}")

    text.seek(0)
    try:
        webhook.post(message, text)
    except WebhookError as e:
        logging.error(f"Posting to webhook failed for {gcs_uri}: {e}")
        return False

    logging.info(f"Notification sent for {gcs_uri}")
    return True


# ———————————————————————————————
# Entry point for GCS-triggered events
# ———————————————————————————————
def handle_gcs_event(event_data: dict) -> bool:
    bucket = event_data.get('bucket')
    name   = event_data.get('name')

    if not bucket or not name:
        logging.error(f"GCS event missing bucket or object name: {event_data}")
        return False

    try:
        return notify_log_export(bucket, name, uploader)
    except Exception:
        logging.exception(f"Unexpected error processing gs://{bucket}/{name}")
        return False
