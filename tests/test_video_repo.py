from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import InvalidRequestError

from stitch_feed.models import Video
from stitch_feed.repositories.video_repo import (
    ContentStoreError,
    DocumentConflictError,
    DocumentNotFoundError,
    QueryRejectedError,
    TransientStoreError,
    VideoQuery,
    VideoRepository,
)


class TestDecoding:
    @pytest.mark.asyncio
    async def test_missing_fields_fall_back_to_defaults(self, repo, seed):
        seed(Video(id="raw"))

        node = await repo.get("raw")

        assert node.thread_id == "raw"
        assert node.creator_name == "Unknown"
        assert node.conversation_depth == 0
        assert node.visibility == "public"
        assert node.discoverability_score == 0.5
        assert node.is_discoverable

    @pytest.mark.asyncio
    async def test_negative_counters_clamp_to_zero(self, repo, seed, now):
        seed(Video(id="neg", created_at=now, view_count=-4, hype_count=-1, reply_count=3))

        node = await repo.get("neg")

        assert node.view_count == 0
        assert node.hype_count == 0
        assert node.reply_count == 3
        assert node.created_at == now

    @pytest.mark.asyncio
    async def test_get_missing_raises_and_find_returns_none(self, repo):
        assert await repo.find("ghost") is None
        with pytest.raises(DocumentNotFoundError):
            await repo.get("ghost")


class TestQueryShape:
    @pytest.mark.asyncio
    async def test_in_filter_over_limit_is_rejected(self, repo):
        ids = [f"creator-{index}" for index in range(11)]
        with pytest.raises(QueryRejectedError):
            await repo.query(VideoQuery().where("creator_id", "in", ids))

    @pytest.mark.asyncio
    async def test_empty_in_filter_is_rejected(self, repo):
        with pytest.raises(QueryRejectedError):
            await repo.query(VideoQuery().where("creator_id", "in", []))

    @pytest.mark.asyncio
    async def test_three_sort_fields_are_rejected(self, repo):
        query = VideoQuery().order_by("created_at").order_by("hype_count").order_by("view_count")
        with pytest.raises(QueryRejectedError):
            await repo.query(query)

    @pytest.mark.asyncio
    async def test_unknown_field_is_rejected(self, repo):
        with pytest.raises(QueryRejectedError):
            await repo.query(VideoQuery().where("password", "==", "x"))

    @pytest.mark.asyncio
    async def test_cursor_requires_ordering(self, repo, make_video):
        with pytest.raises(QueryRejectedError):
            await repo.query(VideoQuery().start_after(make_video("anchor")))

    def test_builder_returns_new_queries(self):
        base = VideoQuery()
        narrowed = base.where("conversation_depth", "==", 0).limit(5)
        assert base.filters == ()
        assert base.limit_to is None
        assert len(narrowed.filters) == 1
        assert narrowed.limit_to == 5


class TestPaging:
    @pytest.mark.asyncio
    async def test_start_after_walks_newest_first(self, repo, seed, make_video):
        videos = [make_video(f"t{hour}", age=timedelta(hours=hour)) for hour in range(1, 6)]
        seed(*videos)
        query = VideoQuery().order_by("created_at", descending=True).limit(2)

        first = await repo.query(query)
        second = await repo.query(query.start_after(first[-1]))
        third = await repo.query(query.start_after(second[-1]))

        assert [node.id for node in first + second + third] == ["t1", "t2", "t3", "t4", "t5"]

    @pytest.mark.asyncio
    async def test_equal_timestamps_page_by_id(self, repo, seed, make_video):
        seed(*(make_video(f"same-{letter}", age=timedelta(hours=2)) for letter in "abc"))
        query = VideoQuery().order_by("created_at").limit(1)

        seen = []
        cursor = None
        for _ in range(3):
            page = await repo.query(query.start_after(cursor))
            seen.extend(node.id for node in page)
            cursor = page[-1]

        assert seen == ["same-a", "same-b", "same-c"]

    @pytest.mark.asyncio
    async def test_get_many_chunks_and_keeps_input_order(self, repo, seed, make_video):
        seed(*(make_video(f"m{index:02d}") for index in range(12)))
        wanted = [f"m{index:02d}" for index in reversed(range(12))] + ["missing"]

        nodes = await repo.get_many(wanted)

        assert [node.id for node in nodes] == wanted[:-1]


class TestWrites:
    @pytest.mark.asyncio
    async def test_create_and_increment_reply_count(self, repo, seed, make_video):
        seed(Video(id="parent"))
        await repo.create(make_video("reply", creator="bob", thread_id="parent", conversation_depth=1))

        await repo.increment_reply_count("parent")
        await repo.increment_reply_count("parent")

        assert (await repo.get("parent")).reply_count == 2
        assert (await repo.get("reply")).thread_id == "parent"

    @pytest.mark.asyncio
    async def test_duplicate_id_is_a_conflict(self, repo, seed, make_video):
        seed(Video(id="taken", creator_id="alice"))

        with pytest.raises(DocumentConflictError):
            await repo.create(make_video("taken", creator="bob"))

        assert (await repo.get("taken")).creator_id == "alice"

    @pytest.mark.asyncio
    async def test_following_ids_in_follow_order(self, repo, follow):
        follow("viewer", "carol", "alice", "bob")
        follow("someone-else", "dave")

        assert await repo.get_following_ids("viewer") == ["carol", "alice", "bob"]
        assert await repo.get_following_ids("nobody") == []


@pytest.mark.asyncio
async def test_driver_failures_become_transient_errors(mocker):
    factory = mocker.Mock(side_effect=OSError("disk unavailable"))
    repository = VideoRepository(factory, in_filter_limit=10)

    with pytest.raises(TransientStoreError):
        await repository.find("anything")


@pytest.mark.asyncio
async def test_other_sqlalchemy_errors_are_not_transient(mocker):
    factory = mocker.Mock(side_effect=InvalidRequestError("bad mapping"))
    repository = VideoRepository(factory, in_filter_limit=10)

    with pytest.raises(ContentStoreError) as excinfo:
        await repository.find("anything")

    assert not isinstance(excinfo.value, TransientStoreError)
