from __future__ import annotations

import http.client
import json
import socket
from decimal import Decimal
from unittest.mock import MagicMock, patch
from urllib import error as urlerror

import pytest

from lotus_metrics.rpc import LotusClient, MinerClient, NodeClient, _jsonrpc
from lotus_metrics.types import ConversionError, TransportError


def _response(payload):
    resp = MagicMock()
    resp.read.return_value = json.dumps(payload).encode()
    cm = MagicMock()
    cm.__enter__.return_value = resp
    return cm


@patch("lotus_metrics.rpc.request.urlopen")
def test_jsonrpc_success_sends_bearer_token(mock_urlopen):
    mock_urlopen.return_value = _response({"jsonrpc": "2.0", "id": 1, "result": {"ok": True}})
    result, err = _jsonrpc("http://127.0.0.1:1234/rpc/v0", "Filecoin.NodeStatus", [True], token="secret")
    assert err is None
    assert result == {"ok": True}

    req = mock_urlopen.call_args[0][0]
    assert req.get_header("Authorization") == "Bearer secret"
    body = json.loads(req.data.decode())
    assert body["method"] == "Filecoin.NodeStatus"
    assert body["params"] == [True]


@patch("lotus_metrics.rpc.request.urlopen")
def test_jsonrpc_without_token_sends_no_authorization(mock_urlopen):
    mock_urlopen.return_value = _response({"jsonrpc": "2.0", "id": 1, "result": []})
    _jsonrpc("http://127.0.0.1:1234/rpc/v0", "Filecoin.WalletList")
    req = mock_urlopen.call_args[0][0]
    assert req.get_header("Authorization") is None


@patch("lotus_metrics.rpc.request.urlopen")
def test_jsonrpc_error_payload(mock_urlopen):
    mock_urlopen.return_value = _response({"jsonrpc": "2.0", "id": 1, "error": {"code": 1, "message": "missing permission"}})
    result, err = _jsonrpc("http://127.0.0.1:2345/rpc/v0", "Filecoin.WorkerStats")
    assert result is None
    assert "missing permission" in err


@patch("lotus_metrics.rpc.request.urlopen", side_effect=urlerror.URLError("connection refused"))
def test_jsonrpc_connection_error(mock_urlopen):
    result, err = _jsonrpc("http://127.0.0.1:2345/rpc/v0", "Filecoin.WorkerStats")
    assert result is None
    assert "connection error" in err


@patch("lotus_metrics.rpc.request.urlopen", side_effect=socket.timeout())
def test_jsonrpc_timeout(mock_urlopen):
    result, err = _jsonrpc("http://127.0.0.1:2345/rpc/v0", "Filecoin.StorageList", timeout=1.0)
    assert result is None
    assert "timeout after 1.0s" in err


@pytest.mark.parametrize("exc", [
    http.client.BadStatusLine("NOT-HTTP garbage"),
    http.client.IncompleteRead(b'{"jsonrpc": "2.0"'),
    http.client.LineTooLong("header line"),
])
def test_jsonrpc_malformed_http_reply_is_an_error(exc):
    with patch("lotus_metrics.rpc.request.urlopen", side_effect=exc):
        result, err = _jsonrpc("http://127.0.0.1:1234/rpc/v0", "Filecoin.NodeStatus", [True])
    assert result is None
    assert "Filecoin.NodeStatus" in err


@patch("lotus_metrics.rpc._jsonrpc", return_value=(None, "rpc Filecoin.WalletList error: boom"))
def test_client_raises_transport_error(mock_rpc):
    client = LotusClient("http://127.0.0.1:1234/rpc/v0", token="t")
    with pytest.raises(TransportError) as excinfo:
        client.call("WalletList")
    assert excinfo.value.method == "Filecoin.WalletList"


@patch("lotus_metrics.rpc._jsonrpc", return_value=("3000000000000000000", None))
def test_node_client_parses_balance(mock_rpc):
    client = NodeClient("http://127.0.0.1:1234/rpc/v0", token="t", timeout=2.0)
    assert client.get_balance("f1abc") == Decimal(3 * 10 ** 18)
    mock_rpc.assert_called_once_with(
        "http://127.0.0.1:1234/rpc/v0", "Filecoin.WalletBalance", ["f1abc"], token="t", timeout=2.0)


@patch("lotus_metrics.rpc._jsonrpc", return_value=("not-a-number", None))
def test_node_client_rejects_corrupt_balance(mock_rpc):
    client = NodeClient("http://127.0.0.1:1234/rpc/v0", token="t")
    with pytest.raises(ConversionError):
        client.get_balance("f1abc")


@patch("lotus_metrics.rpc._jsonrpc", return_value=(None, None))
def test_null_results_become_empty_collections(mock_rpc):
    client = MinerClient("http://127.0.0.1:2345/rpc/v0", token="t")
    assert client.list_market_deals() == []
    assert client.get_worker_jobs() == {}
    assert client.list_storage_devices() == {}
