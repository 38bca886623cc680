"""Tests for the JSON wire format."""

import json

import pytest

from timesync.api.wire import (
    SyncResponse,
    build_sync_response,
    decode_sync_response,
    encode_sync_request,
    parse_message,
)


def test_encode_sync_request():
    """Test sync request encoding"""
    assert json.loads(encode_sync_request(1234.5)) == {"type": "sync_req", "t1": 1234.5}


def test_decode_sync_response():
    """Test sync response decoding"""
    raw = json.dumps({"type": "sync_res", "t1": 1000, "t2": 1050, "t3": 1055})
    assert decode_sync_response(raw) == SyncResponse(t1=1000, t2=1050, t3=1055)


def test_decode_accepts_bytes():
    """Test decoding binary frames"""
    raw = json.dumps({"type": "sync_res", "t1": 1, "t2": 2, "t3": 3}).encode("utf-8")
    assert decode_sync_response(raw) == SyncResponse(t1=1, t2=2, t3=3)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "",
        "[1, 2, 3]",
        "42",
        json.dumps({"type": "sync_req", "t1": 1}),
        json.dumps({"type": "hello"}),
        json.dumps({"type": "sync_res", "t1": 1, "t2": 2}),
        json.dumps({"type": "sync_res", "t1": "1", "t2": 2, "t3": 3}),
        json.dumps({"type": "sync_res", "t1": True, "t2": 2, "t3": 3}),
        b"\xff\xfe",
    ],
)
def test_decode_drops_anything_else(raw):
    """Test invalid responses are dropped"""
    assert decode_sync_response(raw) is None


def test_parse_message_only_objects():
    """Test only JSON objects are parsed"""
    assert parse_message('{"a": 1}') == {"a": 1}
    assert parse_message('"text"') is None
    assert parse_message("{broken") is None


def test_build_sync_response_echoes_t1():
    """Test response echoes t1 with server times"""
    response = build_sync_response({"type": "sync_req", "t1": 1000}, t2=1050, t3=1055)
    assert response == {"type": "sync_res", "t1": 1000, "t2": 1050, "t3": 1055}


def test_build_sync_response_ignores_other_requests():
    """Test non-sync requests get no response"""
    assert build_sync_response({"type": "ping"}, t2=1, t3=1) is None
    assert build_sync_response({"type": "sync_req"}, t2=1, t3=1) is None
    assert build_sync_response({"type": "sync_req", "t1": None}, t2=1, t3=1) is None
