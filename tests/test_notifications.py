"""Tests for classboard.notifications."""

import pytest

from classboard.models import NotificationAction, PostType
from classboard.notifications import EdgeFunctionNotificationGenerator, build_payload


class TestBuildPayload:
    """Tests for build_payload."""

    def test_created_payload_has_no_previous(self, make_post):
        post = make_post(type=PostType.EVENT)

        payload = build_payload(post, NotificationAction.CREATED)

        assert payload["action"] == "created"
        assert payload["post"]["id"] == post.id
        assert payload["post"]["type"] == "EVENT"
        assert payload["oldPost"] is None

    def test_update_payload_carries_previous_snapshot(self, make_post):
        before = make_post(title="Old title")
        after = make_post(id=before.id, title="New title")

        payload = build_payload(after, NotificationAction.UPDATED, before)

        assert payload["oldPost"]["title"] == "Old title"
        assert payload["post"]["title"] == "New title"


class TestEdgeFunctionNotificationGenerator:
    """Tests for EdgeFunctionNotificationGenerator."""

    @pytest.mark.asyncio
    async def test_invokes_edge_function(self, mock_supabase_client, make_post):
        post = make_post()
        generator = EdgeFunctionNotificationGenerator(mock_supabase_client)

        await generator.generate(post, NotificationAction.DEADLINE_CHANGED, post)

        mock_supabase_client.functions.invoke.assert_awaited_once_with(
            "create-post-notifications",
            invoke_options={"body": build_payload(post, NotificationAction.DEADLINE_CHANGED, post)},
        )

    @pytest.mark.asyncio
    async def test_failure_propagates_for_outbox_retry(self, mock_supabase_client, make_post):
        mock_supabase_client.functions.invoke.side_effect = RuntimeError("502")
        generator = EdgeFunctionNotificationGenerator(mock_supabase_client, function_name="notify")

        with pytest.raises(RuntimeError):
            await generator.generate(make_post(), NotificationAction.CREATED)

        assert mock_supabase_client.functions.invoke.await_args.args[0] == "notify"
