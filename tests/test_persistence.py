"""Tests for classboard.persistence: filter matching and the in-memory repository."""

from datetime import timedelta

import pytest

from classboard.exceptions import ConflictError, NotFoundError
from classboard.models import Audience, AuthorRole, PostFilter, PostStatus, PostType
from classboard.persistence import InMemoryPostRepository, matches_filter


class TestMatchesFilter:
    """Tests for matches_filter."""

    def test_scheduled_only_when_requested(self, make_post):
        post = make_post(status=PostStatus.SCHEDULED)
        assert matches_filter(post, PostFilter()) is False
        assert matches_filter(post, PostFilter(status=PostStatus.PUBLISHED)) is False
        assert matches_filter(post, PostFilter(status=PostStatus.SCHEDULED)) is True

    def test_type_and_author_role(self, make_post):
        post = make_post(type=PostType.EXAM, author_role=AuthorRole.ADMIN)
        assert matches_filter(post, PostFilter(type=PostType.EXAM)) is True
        assert matches_filter(post, PostFilter(type=PostType.NOTICE)) is False
        assert matches_filter(post, PostFilter(author_role=AuthorRole.TEACHER)) is False

    def test_class_membership_requires_class_audience(self, make_post):
        class_post = make_post(audience=Audience.CLASS, class_ids=["7a", "7b"])
        global_post = make_post()
        assert matches_filter(class_post, PostFilter(class_id="7b")) is True
        assert matches_filter(class_post, PostFilter(class_id="8a")) is False
        assert matches_filter(global_post, PostFilter(class_id="7b")) is False

    def test_query_is_case_insensitive_over_title_and_body(self, make_post):
        post = make_post(title="Science fair", body="Bring your VOLCANO")
        assert matches_filter(post, PostFilter(query="science")) is True
        assert matches_filter(post, PostFilter(query="volcano")) is True
        assert matches_filter(post, PostFilter(query="history")) is False


class TestInMemoryPostRepository:
    """Tests for InMemoryPostRepository."""

    @pytest.mark.asyncio
    async def test_insert_get_returns_copies(self, make_post):
        repo = InMemoryPostRepository()
        post = make_post(class_ids=[])

        stored = await repo.insert(post)
        stored.title = "mutated"

        assert (await repo.get(post.id)).title == post.title

    @pytest.mark.asyncio
    async def test_duplicate_insert_conflicts(self, make_post):
        repo = InMemoryPostRepository()
        post = make_post()
        await repo.insert(post)

        with pytest.raises(ConflictError) as exc_info:
            await repo.insert(post)
        assert exc_info.value.code == "23505"

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, make_post):
        with pytest.raises(NotFoundError):
            await InMemoryPostRepository().update(make_post())

    @pytest.mark.asyncio
    async def test_list_sorts_newest_first_and_paginates(self, make_post, sample_utc_now):
        repo = InMemoryPostRepository()
        posts = [make_post(created_at=sample_utc_now + timedelta(minutes=i)) for i in range(4)]
        for post in posts:
            await repo.insert(post)

        page, total = await repo.list(PostFilter(), offset=1, limit=2)

        assert total == 4
        assert [p.id for p in page] == [posts[2].id, posts[1].id]

    @pytest.mark.asyncio
    async def test_promote_due_only_transitions_due_scheduled(self, make_post, sample_utc_now):
        repo = InMemoryPostRepository()
        due = make_post(status=PostStatus.SCHEDULED, publish_at=sample_utc_now - timedelta(minutes=1))
        exact = make_post(status=PostStatus.SCHEDULED, publish_at=sample_utc_now)
        future = make_post(status=PostStatus.SCHEDULED, publish_at=sample_utc_now + timedelta(minutes=1))
        draft = make_post(status=PostStatus.DRAFT, publish_at=sample_utc_now - timedelta(days=1))
        for post in (due, exact, future, draft):
            await repo.insert(post)

        promoted = await repo.promote_due(sample_utc_now)

        assert {p.id for p in promoted} == {due.id, exact.id}
        assert all(p.status is PostStatus.PUBLISHED for p in promoted)
        assert all(p.updated_at == sample_utc_now for p in promoted)
        assert (await repo.get(future.id)).status is PostStatus.SCHEDULED
        assert (await repo.get(draft.id)).status is PostStatus.DRAFT
        assert await repo.promote_due(sample_utc_now) == []

    @pytest.mark.asyncio
    async def test_delete(self, make_post):
        repo = InMemoryPostRepository()
        post = make_post()
        await repo.insert(post)

        assert await repo.delete(post.id) is True
        assert await repo.delete(post.id) is False
        assert len(repo) == 0
