"""
Notification generator collaborator.

The post core only *triggers* notification generation; fan-out to users and
delivery happen downstream. ``EdgeFunctionNotificationGenerator`` invokes
the Supabase edge function that materialises per-user notifications.
"""

import logging
from typing import Any, Dict, Optional, Protocol

from supabase import AsyncClient

from classboard.models import NotificationAction, Post

logger = logging.getLogger(__name__)

DEFAULT_FUNCTION_NAME = "create-post-notifications"


class NotificationGenerator(Protocol):
    """Creates notifications for a post's audience."""

    async def generate(
        self,
        post: Post,
        action: NotificationAction,
        previous: Optional[Post] = None,
    ) -> None: ...


def build_payload(
    post: Post,
    action: NotificationAction,
    previous: Optional[Post] = None,
) -> Dict[str, Any]:
    """JSON body sent to the edge function: ``{post, action, oldPost}``."""
    return {
        "post": post.snapshot(),
        "action": action.value,
        "oldPost": previous.snapshot() if previous is not None else None,
    }


class EdgeFunctionNotificationGenerator:
    """``NotificationGenerator`` backed by a Supabase edge function.

    Args:
        client: Async Supabase client.
        function_name: Edge function to invoke.
    """

    def __init__(
        self,
        client: AsyncClient,
        function_name: str = DEFAULT_FUNCTION_NAME,
    ) -> None:
        self.client = client
        self.function_name = function_name

    async def generate(
        self,
        post: Post,
        action: NotificationAction,
        previous: Optional[Post] = None,
    ) -> None:
        await self.client.functions.invoke(
            self.function_name,
            invoke_options={"body": build_payload(post, action, previous)},
        )
        logger.info(
            "[NOTIFY] %s notifications requested for post %s",
            action.value,
            post.id,
        )


__all__ = [
    "DEFAULT_FUNCTION_NAME",
    "NotificationGenerator",
    "build_payload",
    "EdgeFunctionNotificationGenerator",
]
