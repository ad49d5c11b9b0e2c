import json
from unittest.mock import MagicMock

import pytest
import requests

from hexvis_lib.app import create_app

SIX_IMAGES = [f"data:image/png;base64,IMG{i}" for i in range(6)]


def _response(content='{"connections": {}}', ok=True, status_code=200, body=None):
    if body is None:
        body = json.dumps({"choices": [{"message": {"content": content}}]})
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.reason = "Bad Gateway" if not ok else "OK"
    response.iter_content.return_value = [body.encode("utf-8")]
    return response


@pytest.fixture
def app(tmp_path):
    return create_app(
        {
            "TESTING": True,
            "CONFIG_PATH": str(tmp_path / "hexvis.cfg"),
            "OLLAMA_URL": "http://llm.local",
            "VISION_MODEL": "vision-model",
        }
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mock_post(mocker):
    return mocker.patch("hexvis_lib.llm.requests.post", return_value=_response())


def test_analyze_connections_success(client, mock_post):
    mock_post.return_value = _response(
        '<think>east is a road</think>{"connections": {"east": "road", "west": "lava"}}'
    )

    res = client.post(
        "/api/vision/analyze-connections",
        json={"images": SIX_IMAGES, "tileType": "road", "biome": "plains"},
    )

    assert res.status_code == 200
    assert res.get_json() == {"success": True, "connections": {"east": "road"}}
    args, kwargs = mock_post.call_args
    assert args[0] == "http://llm.local/v1/chat/completions"
    assert kwargs["json"]["model"] == "vision-model"


def test_request_can_override_endpoint_and_model(client, mock_post):
    client.post(
        "/api/vision/analyze-connections",
        json={"images": SIX_IMAGES, "localUrl": "http://other:1234", "model": "llava"},
    )

    args, kwargs = mock_post.call_args
    assert args[0] == "http://other:1234/v1/chat/completions"
    assert kwargs["json"]["model"] == "llava"


def test_wrong_image_count_is_a_client_error(client, mock_post):
    res = client.post("/api/vision/analyze-connections", json={"images": SIX_IMAGES[:5]})

    assert res.status_code == 400
    body = res.get_json()
    assert body["success"] is False
    assert body["type"] == "ValidationError"
    mock_post.assert_not_called()


@pytest.mark.parametrize("body", [None, {"images": "not-a-list"}, {}])
def test_malformed_body_is_rejected(client, mock_post, body):
    if body is None:
        res = client.post("/api/vision/analyze-connections", data="nope", content_type="text/plain")
    else:
        res = client.post("/api/vision/analyze-connections", json=body)

    assert res.status_code == 400
    mock_post.assert_not_called()


def test_timeout_maps_to_gateway_timeout(client, mock_post):
    mock_post.side_effect = requests.exceptions.ReadTimeout("slow model")

    res = client.post("/api/vision/analyze-connections", json={"images": SIX_IMAGES})

    assert res.status_code == 504
    body = res.get_json()
    assert body["type"] == "TimeoutError"
    assert "timed out" in body["error"]


def test_upstream_error_reports_status(client, mock_post):
    mock_post.return_value = _response(ok=False, status_code=500, body="model crashed")

    res = client.post("/api/vision/analyze-connections", json={"images": SIX_IMAGES})

    assert res.status_code == 502
    body = res.get_json()
    assert body["type"] == "TransportError"
    assert body["upstreamStatus"] == 500


def test_unparseable_answer_is_a_gateway_error(client, mock_post):
    mock_post.return_value = _response("no json here")

    res = client.post("/api/vision/analyze-connections", json={"images": SIX_IMAGES})

    assert res.status_code == 502
    assert res.get_json()["type"] == "ParseError"


def test_directions_endpoint(client):
    res = client.get("/api/vision/directions")

    assert res.status_code == 200
    data = res.get_json()
    assert [d["name"] for d in data] == [
        "east",
        "southeast",
        "southwest",
        "west",
        "northwest",
        "northeast",
    ]
    assert [d["angle"] for d in data] == [0, 60, 120, 180, 240, 300]


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.data == b"OK"


def test_settings_roundtrip(client, app):
    res = client.get("/api/settings/")
    assert res.status_code == 200
    settings = res.get_json()
    assert settings["Ollama"]["url"] == "http://localhost:11434"
    assert settings["Render"]["width"] == "512"

    settings["Render"]["width"] = "256"
    res = client.post("/api/settings/", json=settings)
    assert res.status_code == 200
    assert res.get_json()["success"] is True

    assert app.config_service.render_options().width == 256


@pytest.mark.parametrize("body", [{}, {"Ollama": "http://x"}])
def test_settings_rejects_malformed_body(client, body):
    res = client.post("/api/settings/", json=body)
    assert res.status_code == 400


def test_unknown_route_returns_json_error(client):
    res = client.get("/api/nope")
    assert res.status_code == 404
    assert res.get_json()["success"] is False


def test_malformed_upstream_body_is_a_gateway_error(client, mock_post):
    mock_post.return_value = _response(body='{"choices": [{"message": "oops"}]}')

    res = client.post("/api/vision/analyze-connections", json={"images": SIX_IMAGES})

    assert res.status_code == 502
    body = res.get_json()
    assert body["type"] == "TransportError"
    assert body["upstreamStatus"] == 200


@pytest.mark.parametrize(
    "body",
    [
        {"Render": {"width": "-5"}},
        {"Render": {"fov": "wide"}},
        {"Render": {"background_color": "#zzzzzz"}},
        {"Render": {"zoom": "2"}},
        {"Ollama": {"url": "  "}},
        {"Ollama": {"temperature": "0.9"}},
        {"Shaders": {"enabled": "yes"}},
    ],
)
def test_settings_rejects_invalid_values(client, app, body):
    res = client.post("/api/settings/", json=body)

    assert res.status_code == 400
    assert res.get_json()["success"] is False
    assert app.config_service.render_options().width == 512


def test_partial_settings_update_keeps_other_values(client, app):
    res = client.post(
        "/api/settings/",
        json={"Render": {"fov": 30}, "Ollama": {"vision_model": "qwen2.5vl"}},
    )
    assert res.status_code == 200

    settings = app.config_service.get_settings()
    assert settings["Render"]["fov"] == "30"
    assert settings["Render"]["width"] == "512"
    assert settings["Ollama"]["url"] == "http://localhost:11434"
    assert app.config["VISION_MODEL"] == "qwen2.5vl"
