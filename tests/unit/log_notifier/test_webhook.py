import io
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from services.log_notifier.src.webhook import (
    WebhookError,
    WebhookUploader,
    compose_message,
    generate_filename,
)


def _response(status_code: int, body: bytes = b"") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    resp._content = body
    resp._content_consumed = True
    return resp


def test_compose_message_thresholds():
    assert compose_message(0) == "log length: 0"
    assert compose_message(49) == "log length: 49"
    assert compose_message(50) == "@everyone log length: 50"
    assert compose_message(120) == "@everyone log length: 120"


def test_compose_message_is_pure():
    assert compose_message(50) == compose_message(50)
    assert compose_message(7) == compose_message(7)


def test_generate_filename_is_not_zero_padded():
    now = datetime(2024, 3, 7, 9, 5, 2)
    assert generate_filename(now) == "errlogs-2024-3-7-9-5-2.txt"


def test_generate_filename_defaults_to_current_time():
    with patch("services.log_notifier.src.webhook.datetime") as fake_datetime:
        fake_datetime.now.return_value = datetime(2025, 12, 31, 23, 59, 59)
        assert generate_filename() == "errlogs-2025-12-31-23-59-59.txt"
    fake_datetime.now.assert_called_once_with()


def test_build_request_multipart_layout():
    uploader = WebhookUploader("https://hooks.example.com/webhook")
    prepared = uploader.build_request("@everyone log length: 60", io.StringIO("line 1\nline 2\n"))

    content_type = prepared.headers["Content-Type"]
    assert content_type.startswith("multipart/form-data; boundary=")
    boundary = content_type.split("boundary=", 1)[1].encode()
    assert boundary in prepared.body

    body = prepared.body
    file_pos = body.index(b'name="file"; filename="errlogs-')
    content_pos = body.index(b'name="content"')
    assert file_pos < content_pos
    assert b"line 1\nline 2\n" in body
    assert b"@everyone log length: 60" in body
    assert prepared.method == "POST"
    assert prepared.url == "https://hooks.example.com/webhook"


@pytest.mark.parametrize("url", [None, ""])
def test_build_request_without_url_raises(url):
    uploader = WebhookUploader(url)
    with pytest.raises(WebhookError):
        uploader.build_request("log length: 1", b"x\n")


def test_post_success_sends_once():
    session = MagicMock()
    session.send.return_value = _response(200, b"{}")
    uploader = WebhookUploader("https://hooks.example.com/webhook", timeout=5, session=session)

    resp = uploader.post("log length: 1", io.StringIO("x\n"))

    assert resp.status_code == 200
    session.send.assert_called_once()
    _, kwargs = session.send.call_args
    assert kwargs["timeout"] == 5


def test_post_http_error_includes_body():
    session = MagicMock()
    session.send.return_value = _response(500, b"server error")
    uploader = WebhookUploader("https://hooks.example.com/webhook", session=session)

    with pytest.raises(WebhookError) as excinfo:
        uploader.post("log length: 1", io.StringIO("x\n"))

    assert excinfo.value.status_code == 500
    assert "server error" in str(excinfo.value)
    session.send.assert_called_once()


def test_post_accepts_3xx_as_success():
    session = MagicMock()
    session.send.return_value = _response(399)
    uploader = WebhookUploader("https://hooks.example.com/webhook", session=session)
    assert uploader.post("m", b"").status_code == 399


def test_post_transport_error_is_wrapped():
    session = MagicMock()
    session.send.side_effect = requests.exceptions.ConnectionError("refused")
    uploader = WebhookUploader("https://hooks.example.com/webhook", session=session)

    with pytest.raises(WebhookError) as excinfo:
        uploader.post("m", b"x")

    assert "refused" in str(excinfo.value)
    assert excinfo.value.status_code is None
