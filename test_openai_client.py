#!/usr/bin/env python3
"""
Tests for the OpenAI client request shape and failure classification.
HTTP traffic is served by httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest

from spica_writer.exceptions import ApiError, ConfigError, NetworkError, UpstreamError
from spica_writer.llm.openai_client import OpenAIClient

BASE_URL = "https://llm.example.test/v1"


def make_client(handler, model="gpt-4o"):
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return OpenAIClient(api_key="sk-test-key", base_url=BASE_URL, model=model, http_client=http_client)


def completion_body(content):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o",
        "choices": [
            {"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": content}}
        ]
    }


def test_missing_api_key_is_config_error(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ConfigError):
        OpenAIClient()


def test_api_key_read_from_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")

    client = OpenAIClient(base_url=BASE_URL)

    assert client.api_key == "sk-from-env"


def test_request_shape_and_reply():
    captured = {}

    def handler(request):
        captured['method'] = request.method
        captured['path'] = request.url.path
        captured['auth'] = request.headers.get('authorization')
        captured['body'] = json.loads(request.content)
        return httpx.Response(200, json=completion_body("Anna enters.\nBen waves."))

    client = make_client(handler, model="gpt-test")
    reply = client.send_prompt("You are a planner.", "Plan the scene.")

    assert reply == "Anna enters.\nBen waves."
    assert captured['method'] == "POST"
    assert captured['path'] == "/v1/chat/completions"
    assert captured['auth'] == "Bearer sk-test-key"
    assert captured['body']['model'] == "gpt-test"
    assert captured['body']['messages'] == [
        {"role": "system", "content": "You are a planner."},
        {"role": "user", "content": "Plan the scene."}
    ]
    assert 'stream' not in captured['body']


def test_first_choice_is_used():
    body = completion_body("first")
    body['choices'].append({"index": 1, "finish_reason": "stop",
                            "message": {"role": "assistant", "content": "second"}})

    client = make_client(lambda request: httpx.Response(200, json=body))

    assert client.send_prompt("s", "u") == "first"


def test_error_envelope_is_upstream_error():
    envelope = {"error": {"message": "Incorrect API key provided", "type": "invalid_request_error",
                          "code": "invalid_api_key"}}
    client = make_client(lambda request: httpx.Response(401, json=envelope))

    with pytest.raises(UpstreamError) as exc_info:
        client.send_prompt("s", "u")

    assert exc_info.value.message == "Incorrect API key provided"
    assert exc_info.value.code == "invalid_api_key"
    assert exc_info.value.error_type == "invalid_request_error"
    assert exc_info.value.status == 401


def test_unparsable_error_body_is_api_error():
    client = make_client(lambda request: httpx.Response(502, text="<html>Bad Gateway</html>"))

    with pytest.raises(ApiError) as exc_info:
        client.send_prompt("s", "u")

    assert exc_info.value.status == 502
    assert exc_info.value.body == "<html>Bad Gateway</html>"


def test_error_json_without_envelope_is_api_error():
    client = make_client(lambda request: httpx.Response(500, json={"detail": "boom"}))

    with pytest.raises(ApiError) as exc_info:
        client.send_prompt("s", "u")

    assert exc_info.value.status == 500
    assert json.loads(exc_info.value.body) == {"detail": "boom"}


def test_success_without_choices_is_api_error():
    client = make_client(lambda request: httpx.Response(200, json={"choices": []}))

    with pytest.raises(ApiError) as exc_info:
        client.send_prompt("s", "u")

    assert exc_info.value.status == 200


def test_success_with_non_json_body_is_api_error():
    client = make_client(lambda request: httpx.Response(200, text="not json"))

    with pytest.raises(ApiError) as exc_info:
        client.send_prompt("s", "u")

    assert exc_info.value.body == "not json"


def test_connection_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    client = make_client(handler)

    with pytest.raises(NetworkError):
        client.send_prompt("s", "u")


def test_timeout_is_network_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler)

    with pytest.raises(NetworkError):
        client.send_prompt("s", "u")


def test_no_retry_on_failure():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="server error")

    client = make_client(handler)

    with pytest.raises(ApiError):
        client.send_prompt("s", "u")

    assert len(calls) == 1
