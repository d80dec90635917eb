"""Tests for the Flowise chatflow fetcher."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from flowsync.errors import DecodeError, RemoteError, TransportError
from flowsync.models import InstanceConfig
from flowsync.sync.fetcher import FlowiseFetcher, chatflows_url


def _response(status: int = 200, body: str = "[]") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = body
    return resp


@pytest.fixture
def instance() -> InstanceConfig:
    return InstanceConfig(name="inst", url="http://flowise.local//", apiKey="tok", enabled=True)


class TestFlowiseFetcher:
    def test_url_strips_trailing_slashes(self):
        assert chatflows_url("http://x.local///") == "http://x.local/api/v1/chatflows"

    def test_sends_bearer_token_with_timeout(self, instance):
        with patch("flowsync.sync.fetcher.requests.get", return_value=_response()) as get:
            FlowiseFetcher(timeout=7).fetch(instance)

        args, kwargs = get.call_args
        assert args[0] == "http://flowise.local/api/v1/chatflows"
        assert kwargs["headers"]["Authorization"] == "Bearer tok"
        assert kwargs["timeout"] == 7

    def test_no_auth_header_without_key(self):
        inst = InstanceConfig(name="open", url="http://open.local", enabled=True)
        with patch("flowsync.sync.fetcher.requests.get", return_value=_response()) as get:
            FlowiseFetcher().fetch(inst)
        assert "Authorization" not in get.call_args.kwargs["headers"]

    def test_parses_flows(self, instance):
        body = json.dumps([
            {"id": "abc123", "name": "Test Flow", "flowData": '{"a":1}',
             "updatedDate": "T1", "type": "chatflow"},
            {"id": "def456", "name": "Agent", "flowData": "{}",
             "updatedDate": "T2", "type": "MULTIAGENT"},
        ])
        with patch("flowsync.sync.fetcher.requests.get", return_value=_response(body=body)):
            flows = FlowiseFetcher().fetch(instance)

        assert [f.id for f in flows] == ["abc123", "def456"]
        assert flows[1].category == "multiagent"

    def test_skips_entries_without_id(self, instance):
        body = json.dumps([{"name": "no id"}, "garbage", {"id": "x1", "flowData": "{}"}])
        with patch("flowsync.sync.fetcher.requests.get", return_value=_response(body=body)):
            flows = FlowiseFetcher().fetch(instance)
        assert [f.id for f in flows] == ["x1"]

    def test_http_error_raises_remote_error(self, instance):
        with patch(
            "flowsync.sync.fetcher.requests.get",
            return_value=_response(500, "Internal Server Error"),
        ):
            with pytest.raises(RemoteError) as excinfo:
                FlowiseFetcher().fetch(instance)
        assert excinfo.value.status == 500
        assert excinfo.value.body == "Internal Server Error"

    def test_invalid_json_raises_decode_error(self, instance):
        with patch(
            "flowsync.sync.fetcher.requests.get",
            return_value=_response(body="<html>login</html>"),
        ):
            with pytest.raises(DecodeError) as excinfo:
                FlowiseFetcher().fetch(instance)
        assert excinfo.value.body == "<html>login</html>"

    def test_non_array_raises_decode_error(self, instance):
        with patch(
            "flowsync.sync.fetcher.requests.get",
            return_value=_response(body='{"error": "nope"}'),
        ):
            with pytest.raises(DecodeError, match="array"):
                FlowiseFetcher().fetch(instance)

    def test_network_failure_raises_transport_error(self, instance):
        with patch(
            "flowsync.sync.fetcher.requests.get",
            side_effect=requests.ConnectionError("refused"),
        ):
            with pytest.raises(TransportError, match="refused"):
                FlowiseFetcher().fetch(instance)

    def test_timeout_raises_transport_error(self, instance):
        with patch(
            "flowsync.sync.fetcher.requests.get",
            side_effect=requests.Timeout("slow"),
        ):
            with pytest.raises(TransportError):
                FlowiseFetcher().fetch(instance)
