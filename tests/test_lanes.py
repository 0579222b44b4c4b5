from __future__ import annotations

from datetime import timedelta

import pytest

from stitch_feed.repositories.video_repo import TransientStoreError, VideoRepository
from stitch_feed.services.lane_cap import LaneMessageCounter
from stitch_feed.services.lanes import (
    REASON_ALLOWED,
    REASON_CHILD_REPLY,
    REASON_LOOKUP_FAILED,
    REASON_NO_ANCHOR,
    REASON_NOT_PARTICIPANT,
    REASON_SELF_REPLY,
    REASON_THREAD_REPLY,
    ConversationLaneService,
    cap_reason,
)


@pytest.fixture()
def conversation(seed, make_video):
    """alice posts a thread, bob answers it, carol and dave open lanes with bob."""
    thread = make_video("thread", creator="alice", age=timedelta(hours=5))
    child = make_video("child", creator="bob", parent=thread, age=timedelta(hours=4))
    carol_opens = make_video("carol-1", creator="carol", parent=child, age=timedelta(hours=3))
    bob_answers = make_video("bob-1", creator="bob", parent=carol_opens, age=timedelta(hours=2))
    dave_opens = make_video("dave-1", creator="dave", parent=child, age=timedelta(minutes=90))
    bob_self = make_video("bob-self", creator="bob", parent=child, age=timedelta(minutes=80))
    seed(thread, child, carol_opens, bob_answers, dave_opens, bob_self)
    return {
        "thread": thread,
        "child": child,
        "carol-1": carol_opens,
        "bob-1": bob_answers,
        "dave-1": dave_opens,
    }


def _long_lane(make_video, child, length):
    """A strict carol/bob back-and-forth of ``length`` messages under ``child``."""
    messages = []
    parent = child
    for index in range(length):
        creator = "carol" if index % 2 == 0 else "bob"
        parent = make_video(
            f"lane-{index:02d}",
            creator=creator,
            parent=parent,
            age=timedelta(minutes=60 - index),
        )
        messages.append(parent)
    return messages


@pytest.fixture()
def lanes(repo):
    return ConversationLaneService(repo, message_cap=20)


class TestCanReply:
    @pytest.mark.asyncio
    async def test_threads_and_children_accept_anyone(self, lanes, conversation):
        on_thread = await lanes.can_reply(conversation["thread"], "mallory")
        on_child = await lanes.can_reply(conversation["child"], "mallory")

        assert on_thread.allowed and on_thread.reason == REASON_THREAD_REPLY
        assert on_child.allowed and on_child.reason == REASON_CHILD_REPLY

    @pytest.mark.asyncio
    async def test_lane_participants_may_reply(self, lanes, conversation):
        decision = await lanes.can_reply(conversation["carol-1"], "bob")
        deeper = await lanes.can_reply(conversation["bob-1"], "carol")

        assert decision.allowed and decision.reason == REASON_ALLOWED
        assert deeper.allowed

    @pytest.mark.asyncio
    async def test_outsiders_are_sent_to_spin_off(self, lanes, conversation):
        decision = await lanes.can_reply(conversation["carol-1"], "dave")

        assert not decision.allowed
        assert decision.reason == REASON_NOT_PARTICIPANT

    @pytest.mark.asyncio
    async def test_participants_cannot_answer_themselves(self, lanes, conversation):
        decision = await lanes.can_reply(conversation["carol-1"], "carol")

        assert not decision.allowed
        assert decision.reason == REASON_SELF_REPLY

    @pytest.mark.asyncio
    async def test_loaded_lane_at_cap_is_closed(self, lanes, seed, make_video, conversation):
        child = conversation["child"]
        messages = _long_lane(make_video, child, 20)
        seed(*messages)

        loaded = await lanes.load_lane_messages(child, "bob", "carol")
        decision = await lanes.can_reply(messages[-1], "carol")

        assert len(loaded) == 23  # plus carol-1, bob-1 and bob-self
        assert not decision.allowed
        assert decision.reason == cap_reason(20)

    @pytest.mark.asyncio
    async def test_exact_counting_closes_lane_without_preloading(self, repo, seed, make_video, conversation):
        messages = _long_lane(make_video, conversation["child"], 19)
        seed(*messages)
        exact = ConversationLaneService(
            repo,
            LaneMessageCounter(repo, exact=True),
            message_cap=20,
        )
        approximate = ConversationLaneService(repo, message_cap=20)

        closed = await exact.can_reply(messages[-1], "bob")
        still_open = await approximate.can_reply(messages[-1], "bob")

        assert not closed.allowed
        assert still_open.allowed

    @pytest.mark.asyncio
    async def test_missing_parent_denies(self, lanes, seed, make_video):
        orphan = make_video(
            "orphan",
            creator="carol",
            thread_id="gone",
            reply_to_video_id="deleted-child",
            conversation_depth=2,
        )
        seed(orphan)

        decision = await lanes.can_reply(orphan, "carol")

        assert not decision.allowed
        assert decision.reason == REASON_NO_ANCHOR

    @pytest.mark.asyncio
    async def test_depth_mismatch_breaks_the_chain(self, lanes, seed, make_video, conversation):
        skipping = make_video(
            "skipping",
            creator="carol",
            thread_id="thread",
            reply_to_video_id="child",
            conversation_depth=3,
        )
        seed(skipping)

        assert await lanes.resolve_lane(skipping) is None
        assert (await lanes.can_reply(skipping, "bob")).reason == REASON_NO_ANCHOR

    @pytest.mark.asyncio
    async def test_walk_stops_at_hop_limit(self, repo, seed, make_video, conversation):
        messages = _long_lane(make_video, conversation["child"], 6)
        seed(*messages)
        shallow = ConversationLaneService(repo, max_walk_depth=3)

        assert await shallow.resolve_lane(messages[-1]) is None
        assert (await shallow.resolve_lane(messages[2])).anchor.id == "child"

    @pytest.mark.asyncio
    async def test_store_failure_denies_with_retry_reason(self, mocker, make_video):
        store = mocker.AsyncMock(spec=VideoRepository)
        store.find.side_effect = TransientStoreError("timeout")
        lanes = ConversationLaneService(store)
        target = make_video("deep", creator="carol", reply_to_video_id="child", conversation_depth=2)

        decision = await lanes.can_reply(target, "bob")

        assert not decision.allowed
        assert decision.reason == REASON_LOOKUP_FAILED


class TestLaneDiscovery:
    @pytest.mark.asyncio
    async def test_one_lane_per_responder_in_opening_order(self, lanes, conversation):
        found = await lanes.get_lanes(conversation["child"])

        assert [lane.participant_b for lane in found] == ["carol", "dave"]
        assert all(lane.participant_a == "bob" for lane in found)
        assert [lane.first_reply.id for lane in found] == ["carol-1", "dave-1"]
        assert [lane.message_count for lane in found] == [2, 2]  # bob-self counts in both
        assert found[0].is_participant("bob") and not found[0].is_participant("dave")

    @pytest.mark.asyncio
    async def test_lanes_only_exist_under_children(self, lanes, conversation):
        assert await lanes.get_lanes(conversation["thread"]) == []
        assert await lanes.get_lanes(conversation["carol-1"]) == []

    @pytest.mark.asyncio
    async def test_cached_until_invalidated(self, lanes, seed, make_video, conversation):
        child = conversation["child"]
        first = await lanes.get_lanes(child)
        seed(make_video("erin-1", creator="erin", parent=child, age=timedelta(minutes=1)))

        assert await lanes.get_lanes(child) == first

        lanes.invalidate_lane(child.id)
        refreshed = await lanes.get_lanes(child)

        assert [lane.participant_b for lane in refreshed] == ["carol", "dave", "erin"]

    @pytest.mark.asyncio
    async def test_lane_messages_follow_only_participants(self, lanes, conversation):
        messages = await lanes.load_lane_messages(conversation["child"], "carol", "bob")

        assert [node.id for node in messages] == ["carol-1", "bob-1", "bob-self"]

    @pytest.mark.asyncio
    async def test_thread_children_sorted_by_depth_then_time(self, lanes, conversation):
        children = await lanes.load_thread_children("thread")

        assert [node.id for node in children] == [
            "child",
            "carol-1",
            "dave-1",
            "bob-self",
            "bob-1",
        ]

    @pytest.mark.asyncio
    async def test_find_lane_anchor(self, lanes, conversation):
        anchor = await lanes.find_lane_anchor(conversation["bob-1"])
        assert anchor is not None and anchor.id == "child"
        assert await lanes.find_lane_anchor(conversation["child"]) is None

    @pytest.mark.asyncio
    async def test_enumeration_is_stable_across_reloads(self, repo, lanes, conversation):
        child = conversation["child"]
        first = {lane.key for lane in await lanes.get_lanes(child)}

        lanes.invalidate_lane(child.id)
        reloaded = {lane.key for lane in await lanes.get_lanes(child)}
        other_instance = {lane.key for lane in await ConversationLaneService(repo).get_lanes(child)}

        assert first == reloaded == other_instance
        assert first == {("child", "bob", "carol"), ("child", "bob", "dave")}


class TestSameCreatorChain:
    @pytest.fixture()
    def chain(self, seed, make_video):
        """carol replies to her own depth-2 reply in bob's lane."""
        thread = make_video("t", creator="alice", age=timedelta(hours=4))
        child = make_video("c", creator="bob", parent=thread, age=timedelta(hours=3))
        s1 = make_video("s1", creator="carol", parent=child, age=timedelta(hours=2))
        s2 = make_video("s2", creator="carol", parent=s1, age=timedelta(hours=1))
        seed(thread, child, s1, s2)
        return {"child": child, "s1": s1, "s2": s2}

    @pytest.mark.asyncio
    async def test_anchor_creator_may_answer(self, lanes, chain):
        decision = await lanes.can_reply(chain["s2"], "bob")
        assert decision.allowed and decision.reason == REASON_ALLOWED

    @pytest.mark.asyncio
    async def test_outsider_is_denied(self, lanes, chain):
        decision = await lanes.can_reply(chain["s2"], "dave")
        assert not decision.allowed and decision.reason == REASON_NOT_PARTICIPANT

    @pytest.mark.asyncio
    async def test_child_stays_open_to_anyone(self, lanes, chain):
        for user_id in ("bob", "carol", "dave"):
            decision = await lanes.can_reply(chain["child"], user_id)
            assert decision.allowed and decision.reason == REASON_CHILD_REPLY
