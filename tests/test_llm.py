import json
import socket
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from hexvis_lib.errors import TimeoutError, TransportError, ValidationError
from hexvis_lib.llm import (
    VISION_TEMPERATURE,
    VISION_TIMEOUT_S,
    CancelToken,
    query_vision_llm,
    to_image_url,
)
from hexvis_lib.sanitizer import parse_connections

SIX_IMAGES = [f"data:image/png;base64,IMG{i}" for i in range(6)]


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _completion(content):
    return json.dumps({"choices": [{"message": {"content": content}}]})


def _response(content="{}", ok=True, status_code=200, reason="OK", body=None):
    """A streamed requests.Response stand-in whose body arrives in one chunk."""
    if body is None:
        body = _completion(content)
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.reason = reason
    response.iter_content.return_value = [body.encode("utf-8")]
    return response


@pytest.fixture
def mock_post(mocker):
    return mocker.patch("hexvis_lib.llm.requests.post", return_value=_response())


def _query(images=SIX_IMAGES, base_url="http://llm.local", model="vision-model", **kwargs):
    return query_vision_llm(images, base_url, model, "SYSTEM", "USER", **kwargs)


@pytest.mark.parametrize("count", [0, 1, 5, 7, 12])
def test_wrong_image_count_fails_before_network(mock_post, count):
    with pytest.raises(ValidationError):
        _query(images=SIX_IMAGES[:1] * count)
    assert mock_post.call_count == 0


@pytest.mark.parametrize("base_url,model", [("", "m"), ("http://x", ""), (None, "m"), ("http://x", None)])
def test_missing_endpoint_or_model_fails_before_network(mock_post, base_url, model):
    with pytest.raises(ValidationError):
        _query(base_url=base_url, model=model)
    assert mock_post.call_count == 0


def test_empty_image_entry_is_rejected(mock_post):
    images = list(SIX_IMAGES)
    images[3] = ""
    with pytest.raises(ValidationError):
        _query(images=images)
    mock_post.assert_not_called()


def test_to_image_url_prefixes_raw_base64():
    assert to_image_url("iVBORw0KGgo") == "data:image/png;base64,iVBORw0KGgo"
    assert to_image_url("data:image/jpeg;base64,abc") == "data:image/jpeg;base64,abc"


def test_request_shape_and_image_order(mock_post):
    images = list(SIX_IMAGES)
    images[2] = "RAWBASE64"

    _query(images=images, base_url="http://llm.local/")

    mock_post.assert_called_once()
    args, kwargs = mock_post.call_args
    assert args[0] == "http://llm.local/v1/chat/completions"
    payload = kwargs["json"]
    assert payload["model"] == "vision-model"
    assert payload["temperature"] == VISION_TEMPERATURE
    system, user = payload["messages"]
    assert system == {"role": "system", "content": "SYSTEM"}
    assert user["role"] == "user"
    assert user["content"][0] == {"type": "text", "text": "USER"}
    urls = [part["image_url"]["url"] for part in user["content"][1:]]
    expected = list(SIX_IMAGES)
    expected[2] = "data:image/png;base64,RAWBASE64"
    assert urls == expected


def test_returns_raw_content_unmodified(mock_post):
    raw = '<think>hmm</think>\n```json\n{"connections": {}}\n```'
    mock_post.return_value = _response(content=raw)
    assert _query() == raw


def test_null_content_returns_empty_string(mock_post):
    mock_post.return_value = _response(body=json.dumps({"choices": [{"message": {"content": None}}]}))
    assert _query() == ""


def test_timeout_budget_is_passed_to_requests(mock_post):
    clock = FakeClock()
    token = CancelToken(VISION_TIMEOUT_S, clock=clock)
    clock.now = 100.0

    _query(token=token)

    assert mock_post.call_args.kwargs["timeout"] == pytest.approx(VISION_TIMEOUT_S - 100.0)
    assert mock_post.call_args.kwargs["stream"] is True


def test_expired_token_fails_without_network(mock_post):
    clock = FakeClock()
    token = CancelToken(300, clock=clock)
    clock.now = 301.0

    with pytest.raises(TimeoutError) as exc_info:
        _query(token=token)

    assert exc_info.value.timeout_seconds == 300
    mock_post.assert_not_called()


def test_requests_timeout_cancels_token(mock_post):
    token = CancelToken(300, clock=FakeClock())
    mock_post.side_effect = requests.exceptions.ReadTimeout("read timed out")

    with pytest.raises(TimeoutError):
        _query(token=token)

    assert token.cancelled


def test_response_after_deadline_is_a_timeout(mock_post):
    clock = FakeClock()
    token = CancelToken(300, clock=clock)

    def slow_post(*args, **kwargs):
        clock.now = 450.0
        return _response(content='{"connections": {}}')

    mock_post.side_effect = slow_post

    with pytest.raises(TimeoutError):
        _query(token=token)


def test_timeout_is_distinct_from_transport_error(mock_post):
    mock_post.side_effect = requests.exceptions.ConnectTimeout("connect timed out")
    with pytest.raises(TimeoutError) as exc_info:
        _query()
    assert not isinstance(exc_info.value, TransportError)


def test_non_success_status_raises_transport_error(mock_post):
    mock_post.return_value = _response(
        ok=False, status_code=503, reason="Service Unavailable", body="model loading"
    )

    with pytest.raises(TransportError) as exc_info:
        _query()

    assert exc_info.value.status_code == 503
    assert exc_info.value.body == "model loading"
    assert "503" in str(exc_info.value)


def test_connection_failure_raises_transport_error(mock_post):
    mock_post.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(TransportError) as exc_info:
        _query()

    assert exc_info.value.status_code is None
    assert "refused" in str(exc_info.value)


def test_non_json_body_raises_transport_error(mock_post):
    mock_post.return_value = _response(body="<html>proxy error</html>")

    with pytest.raises(TransportError) as exc_info:
        _query()

    assert exc_info.value.body == "<html>proxy error</html>"


def test_session_is_used_when_given(mock_post):
    session = MagicMock()
    session.post.return_value = _response(content="from session")

    assert _query(session=session) == "from session"
    session.post.assert_called_once()
    mock_post.assert_not_called()


@pytest.mark.parametrize(
    "body",
    [
        '{"choices": [{"message": "oops"}]}',
        '{"choices": ["x"]}',
        '{"choices": {"0": {}}}',
        '{"choices": []}',
        '{"error": "model not loaded"}',
        '["not", "an", "object"]',
        '{"choices": [{"message": {"content": [{"type": "text", "text": "{}"}]}}]}',
        '{"choices": [{"message": {"content": 42}}]}',
    ],
)
def test_unexpected_body_shapes_raise_transport_error(mock_post, body):
    mock_post.return_value = _response(body=body)

    with pytest.raises(TransportError) as exc_info:
        _query()

    assert exc_info.value.status_code == 200
    assert exc_info.value.body == body


def test_string_content_is_always_returned_for_parsing(mock_post):
    mock_post.return_value = _response(content='{"connections": {"east": "grass"}}')
    assert parse_connections(_query()) == {"east": "grass"}


def test_deadline_is_checked_between_body_chunks(mock_post):
    clock = FakeClock()
    token = CancelToken(10, clock=clock)

    def drip(chunk_size):
        for byte in _completion("{}").encode("utf-8"):
            clock.now += 1.0
            yield bytes([byte])

    mock_post.return_value.iter_content.side_effect = drip

    with pytest.raises(TimeoutError):
        _query(token=token)

    assert token.cancelled
    mock_post.return_value.close.assert_called_once()


def test_read_failure_after_deadline_is_a_timeout(mock_post):
    clock = FakeClock()
    token = CancelToken(10, clock=clock)

    def stalled(chunk_size):
        clock.now = 11.0
        raise requests.exceptions.ConnectionError("read timed out")
        yield b""

    mock_post.return_value.iter_content.side_effect = stalled

    with pytest.raises(TimeoutError):
        _query(token=token)


def test_read_failure_before_deadline_is_a_transport_error(mock_post):
    def reset(chunk_size):
        raise requests.exceptions.ChunkedEncodingError("connection reset")
        yield b""

    mock_post.return_value.iter_content.side_effect = reset

    with pytest.raises(TransportError):
        _query()
    mock_post.return_value.close.assert_called_once()


def test_budget_running_out_before_send_is_a_timeout(mock_post):
    # Not yet expired when first checked, exhausted by the time the budget is read.
    readings = iter([0.0, 299.5, 300.0])
    token = CancelToken(300, clock=lambda: next(readings))

    with pytest.raises(TimeoutError):
        _query(token=token)

    mock_post.assert_not_called()


@pytest.fixture
def dripping_server():
    """A local HTTP server that sends a 200 header, then one body byte every 0.2s."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    stop = threading.Event()

    def serve():
        try:
            conn, _ = listener.accept()
        except OSError:
            return
        with conn:
            conn.recv(65536)
            conn.sendall(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: application/json\r\n"
                b"Content-Length: 10000\r\n\r\n"
            )
            while not stop.is_set():
                try:
                    conn.sendall(b" ")
                except OSError:
                    break
                stop.wait(0.2)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{listener.getsockname()[1]}"
    stop.set()
    listener.close()
    thread.join(timeout=2)


def test_slow_dripping_server_is_cut_off_at_the_deadline(dripping_server):
    token = CancelToken(1.0)
    start = time.monotonic()

    with pytest.raises(TimeoutError):
        _query(base_url=dripping_server, token=token)

    elapsed = time.monotonic() - start
    assert elapsed < 1.8
    assert token.cancelled
