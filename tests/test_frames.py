"""Tests for frame parsing and serialization."""
import json
from datetime import datetime, timezone

import pytest

from chat_relay.errors import ValidationError
from chat_relay.frames import (
    DirectMessageEvent, DirectMessageFrame, ErrorFrame, GroupMessageEvent, GroupMessageFrame,
    JoinGroupFrame, LeaveGroupFrame, MembershipEvent, parse_frame,
)
from chat_relay.relay_models import DirectTarget, GroupTarget, MessageRecord


def test_parse_each_inbound_type():
    frame = parse_frame(json.dumps({"type": "direct-message", "receiverId": "u2", "content": "hi"}))
    assert isinstance(frame, DirectMessageFrame)
    assert frame.receiver_id == "u2"
    assert frame.content == "hi"

    frame = parse_frame(json.dumps({"type": "group-message", "groupId": "g1", "content": "hello"}))
    assert isinstance(frame, GroupMessageFrame)
    assert frame.group_id == "g1"

    assert isinstance(parse_frame('{"type": "join-group", "groupId": "g1"}'), JoinGroupFrame)
    assert isinstance(parse_frame('{"type": "leave-group", "groupId": "g1"}'), LeaveGroupFrame)


def test_numeric_ids_are_accepted_as_strings():
    frame = parse_frame('{"type": "direct-message", "receiverId": 42, "content": "hi"}')
    assert frame.receiver_id == "42"


@pytest.mark.parametrize("raw,message", [
    ("not json", "Invalid JSON"),
    ("[1, 2]", "Message must be a JSON object"),
    ('{"content": "hi"}', "Message type is required"),
    ('{"type": "typing"}', "Unknown message type: typing"),
    ('{"type": "direct-message", "content": "hi"}', "receiverId and content are required"),
    ('{"type": "direct-message", "receiverId": "u2", "content": ""}', "receiverId and content are required"),
    ('{"type": "direct-message", "receiverId": "u2", "content": "   "}', "receiverId and content are required"),
    ('{"type": "group-message", "groupId": "g1"}', "groupId and content are required"),
    ('{"type": "join-group"}', "groupId is required"),
    ('{"type": "leave-group", "groupId": ""}', "groupId is required"),
])
def test_invalid_frames_raise_validation_error(raw, message):
    with pytest.raises(ValidationError) as exc_info:
        parse_frame(raw)
    assert exc_info.value.message == message


def test_outbound_frames_use_camel_case():
    ts = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    direct = MessageRecord(id="m1", sender_id="u1", target=DirectTarget(user_id="u2"), content="hi", created_at=ts)
    wire = DirectMessageEvent.from_record(direct, "A").to_wire()
    assert wire == {
        "type": "direct-message",
        "messageId": "m1",
        "senderId": "u1",
        "senderName": "A",
        "content": "hi",
        "timestamp": "2024-05-01T12:00:00Z",
    }

    group = MessageRecord(id="m2", sender_id="u1", target=GroupTarget(group_id="g1"), content="yo", created_at=ts)
    wire = GroupMessageEvent.from_record(group, "A").to_wire()
    assert wire["type"] == "group-message"
    assert wire["groupId"] == "g1"
    assert wire["messageId"] == "m2"

    wire = MembershipEvent(type="group-join", group_id="g1", user_id="u1", user_name="A").to_wire()
    assert set(wire) == {"type", "groupId", "userId", "userName", "timestamp"}

    assert ErrorFrame(message="nope").to_wire() == {"type": "error", "message": "nope"}


def test_message_record_target_is_exclusive():
    ts = datetime.now(timezone.utc)
    direct = MessageRecord(id="m1", sender_id="u1", target=DirectTarget(user_id="u2"), content="hi", created_at=ts)
    assert direct.receiver_id == "u2"
    assert direct.group_id is None

    group = MessageRecord.model_validate({
        "id": "m2", "sender_id": "u1", "target": {"kind": "group", "group_id": "g1"},
        "content": "hi", "created_at": ts,
    })
    assert group.group_id == "g1"
    assert group.receiver_id is None
