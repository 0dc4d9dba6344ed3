"""Tests for decoding OneBot wire frames."""

import json

from qq_gateway.qq.events import MessageEvent, MetaEvent, NoticeEvent, RequestEvent, decode_event


def test_decodes_private_message():
    event = decode_event(json.dumps({
        "post_type": "message",
        "message_type": "private",
        "user_id": 42,
        "message": "hello",
        "message_id": 7,
        "time": 1700000000,
        "sender": {"user_id": 42, "nickname": "Bo"},
    }))
    assert isinstance(event, MessageEvent)
    assert event.message == "hello"
    assert event.sender.nickname == "Bo"
    assert not event.is_group


def test_decodes_bytes_frame():
    event = decode_event(b'{"post_type": "meta_event", "meta_event_type": "heartbeat", "interval": 5000}')
    assert isinstance(event, MetaEvent)
    assert event.interval == 5000


def test_decodes_notice_and_request():
    notice = decode_event('{"post_type": "notice", "notice_type": "group_increase", "group_id": 1}')
    request = decode_event('{"post_type": "request", "request_type": "friend", "flag": "abc"}')
    assert isinstance(notice, NoticeEvent)
    assert isinstance(request, RequestEvent)
    assert request.flag == "abc"


def test_invalid_json_is_dropped():
    assert decode_event("not json {") is None


def test_non_object_is_dropped():
    assert decode_event("[1, 2, 3]") is None
    assert decode_event('"message"') is None


def test_unknown_post_type_is_dropped():
    assert decode_event('{"post_type": "message_sent"}') is None
    assert decode_event('{"user_id": 1}') is None


def test_group_message_needs_group_id():
    event = decode_event('{"post_type": "message", "message_type": "group", "group_id": 0}')
    assert isinstance(event, MessageEvent)
    assert not event.is_group


def test_malformed_segments_are_filtered():
    event = decode_event(json.dumps({
        "post_type": "message",
        "message": [
            {"type": "text", "data": {"text": "ok"}},
            "stray string",
            {"data": {"text": "no type"}},
            {"type": "image", "data": None},
        ],
    }))
    assert [seg.type for seg in event.message] == ["text", "image"]
    assert event.message[1].data == {}


def test_null_message_and_sender_degrade():
    event = decode_event('{"post_type": "message", "message": null, "sender": null}')
    assert event.message == ""
    assert event.sender.user_id is None


def test_unknown_segment_type_passes_through():
    event = decode_event(json.dumps({
        "post_type": "message",
        "message": [{"type": "poke", "data": {"id": "1"}}],
    }))
    assert event.message[0].type == "poke"
