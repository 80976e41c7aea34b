"""
Unit tests for the analyzer HTTP client.
"""

import json
from unittest.mock import Mock

import pytest
import requests

from vouch_outbox.analysis_client import (
    AnalysisClient,
    AnalysisResult,
    ServerError,
    TransportError,
)


def _response(status_code=200, body=None, text=None):
    response = Mock()
    response.status_code = status_code
    if body is not None:
        response.json.return_value = body
        response.text = json.dumps(body)
    else:
        response.json.side_effect = ValueError("no json")
        response.text = text or ""
    return response


@pytest.fixture
def session():
    return Mock()


@pytest.fixture
def client(session):
    return AnalysisClient(base_url="http://analyzer.test:3000/", timeout=5, session=session)


def test_submit_posts_sorted_json_with_request_id(client, session, payload):
    session.post.return_value = _response(200, {})

    info = client.submit(payload, request_id="1700000000000_abc")

    args, kwargs = session.post.call_args
    assert args[0] == "http://analyzer.test:3000/analyze"
    assert kwargs["timeout"] == 5
    assert kwargs["headers"]["X-Request-Id"] == "1700000000000_abc"
    assert kwargs["headers"]["Content-Type"] == "application/json; charset=utf-8"
    assert kwargs["data"] == payload.to_json().encode("utf-8")
    assert info.status_code == 200
    assert info.request_id == "1700000000000_abc"


def test_submit_without_request_id_omits_header(client, session, payload):
    session.post.return_value = _response(204, {})

    client.submit(payload)

    assert "X-Request-Id" not in session.post.call_args.kwargs["headers"]


@pytest.mark.parametrize(
    "exc",
    [
        requests.exceptions.ConnectionError("refused"),
        requests.exceptions.Timeout("slow"),
    ],
)
def test_transport_failures_raise_transport_error(client, session, payload, exc):
    session.post.side_effect = exc

    with pytest.raises(TransportError):
        client.submit_for_result(payload, request_id="r1")


def test_non_2xx_raises_server_error(client, session, payload):
    session.post.return_value = _response(500, text="boom")

    with pytest.raises(ServerError) as exc:
        client.submit(payload)

    assert exc.value.status_code == 500
    assert exc.value.body == "boom"


def test_submit_for_result_parses_replacement(client, session, payload):
    session.post.return_value = _response(200, {"replacementChunk": "The Eiffel Tower is in Paris."})

    outcome, info = client.submit_for_result(payload, request_id="r1")

    assert outcome == AnalysisResult(replacement_chunk="The Eiffel Tower is in Paris.")
    assert info.status_code == 200


def test_submit_for_result_null_replacement_is_verified(client, session, payload):
    session.post.return_value = _response(200, {"replacementChunk": None})

    outcome, _ = client.submit_for_result(payload)

    assert outcome == AnalysisResult(replacement_chunk=None)


@pytest.mark.parametrize(
    "response",
    [
        _response(200, {}),
        _response(200, {"ok": True, "duplicate": True}),
        _response(200, {"replacementChunk": 42}),
        _response(200, ["not", "an", "object"]),
        _response(200, text="The text looks correct."),
    ],
    ids=["empty", "duplicate-ack", "wrong-type", "array", "free-form"],
)
def test_submit_for_result_malformed_2xx_is_no_outcome(client, session, payload, response):
    session.post.return_value = response

    outcome, info = client.submit_for_result(payload)

    assert outcome is None
    assert info.status_code == 200


def test_health_check(client, session):
    session.get.return_value = _response(200, text="ok")
    assert client.health_check() is True
    assert session.get.call_args.args[0] == "http://analyzer.test:3000/healthz"

    session.get.return_value = _response(503, text="down")
    assert client.health_check() is False

    session.get.side_effect = requests.exceptions.ConnectionError("refused")
    assert client.health_check() is False
