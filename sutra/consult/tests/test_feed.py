"""
Tests for the in-process message feed and client-side merge.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sutra.consult.content import MessageType, TextContent
from sutra.consult.feed import MessageFeed, merge_message
from sutra.consult.records import Doctor, Message, SenderType

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _msg(session_id="s1", text="hi", offset=0, id=None):
    msg = Message(
        session_id=session_id,
        sender_type=SenderType.PATIENT,
        sender_id="patient-p",
        message_type=MessageType.TEXT,
        content=TextContent(text=text),
    )
    update = {"created_at": T0 + timedelta(seconds=offset)}
    if id is not None:
        update["id"] = id
    return msg.model_copy(update=update)


class TestMessageFeed:

    @pytest.mark.asyncio
    async def test_subscriber_receives_its_session_only(self):
        feed = MessageFeed()
        sub = feed.subscribe("s1")

        feed.publish(_msg("s2", "elsewhere"))
        feed.publish(_msg("s1", "here"))

        assert sub.pending == 1
        assert (await sub.get()).content.text == "here"

    @pytest.mark.asyncio
    async def test_insert_order_preserved(self):
        feed = MessageFeed()
        sub = feed.subscribe("s1")
        for text in ["a", "b", "c"]:
            feed.publish(_msg("s1", text))
        assert [sub.get_nowait().content.text for _ in range(3)] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self):
        feed = MessageFeed()
        sub = feed.subscribe("s1")
        feed.unsubscribe(sub)

        feed.publish(_msg("s1"))

        assert sub.closed
        assert sub.pending == 0
        assert feed.subscriber_count("s1") == 0

    @pytest.mark.asyncio
    async def test_fan_out_to_every_viewer(self):
        feed = MessageFeed()
        subs = [feed.subscribe("s1") for _ in range(3)]
        feed.publish(_msg("s1"))
        assert [s.pending for s in subs] == [1, 1, 1]

    @pytest.mark.asyncio
    async def test_store_inserts_reach_subscribers(self, services, store):
        sub = services.feed.subscribe("s1")

        store.insert("doctors", Doctor())
        inserted = store.insert("messages", _msg("s1", "from store"))

        assert sub.pending == 1
        assert sub.get_nowait().id == inserted.id


class TestMergeMessage:
    def test_duplicate_ignored(self):
        messages = [_msg(id="m1")]
        assert merge_message(messages, _msg(id="m1", text="again")) is False
        assert len(messages) == 1

    def test_appends_newest(self):
        messages = [_msg(id="m1", offset=0)]
        assert merge_message(messages, _msg(id="m2", offset=5)) is True
        assert [m.id for m in messages] == ["m1", "m2"]

    def test_late_arrival_sorted_in(self):
        messages = [_msg(id="m1", offset=0), _msg(id="m3", offset=10)]
        merge_message(messages, _msg(id="m2", offset=5))
        assert [m.id for m in messages] == ["m1", "m2", "m3"]

    def test_equal_timestamp_goes_after(self):
        messages = [_msg(id="m1", offset=0)]
        merge_message(messages, _msg(id="m2", offset=0))
        assert [m.id for m in messages] == ["m1", "m2"]
