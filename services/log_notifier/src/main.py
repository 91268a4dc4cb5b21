# services/log_notifier/src/main.py

import os
from flask import Flask, request

from services.log_notifier.src.log_notifier import handle_gcs_event

app = Flask(__name__)

@app.route('/', methods=['POST'])
def index():
    """ Cloud Run service endpoint for Eventarc GCS object-finalized events. """
    envelope = request.get_json(silent=True)
    if not isinstance(envelope, dict):
        app.logger.error("Bad Eventarc request: body is not a JSON object.")
        return "Bad Request: Invalid Eventarc message format", 400

    # Accept both the raw storage object payload and a push-style envelope.
    gcs_event_data = envelope.get('message', envelope)
    if (
        not isinstance(gcs_event_data, dict)
        or not gcs_event_data.get('bucket')
        or not gcs_event_data.get('name')
    ):
        app.logger.error(f"Invalid GCS event payload structure: {gcs_event_data}")
        return "Bad Request: Invalid GCS event payload", 400

    app.logger.info(
        f"Log notifier received GCS event for: "
        f"gs://{gcs_event_data['bucket']}/{gcs_event_data['name']}"
    )

    # Always acknowledge so the object is not redelivered and notified twice.
    handle_gcs_event(gcs_event_data)
    return "", 204


if __name__ == '__main__':
    PORT = int(os.getenv("PORT", 8080))
    app.run(host='0.0.0.0', port=PORT, debug=False)
