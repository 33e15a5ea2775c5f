from typing import Optional

from gidgethub.routing import Router
from gidgethub.sansio import Event
from sanic.log import logger

from ariane.github.api import API
from ariane.handlers.issue_comment import PRCommentHandler
from ariane.handlers.merge_group import MergeGroupHandler
from ariane.handlers.types import EventResult

__all__ = [
    "EventResult",
    "MergeGroupHandler",
    "PRCommentHandler",
    "create_router",
]


def create_router(
    comment_handler: Optional[PRCommentHandler] = None,
    merge_group_handler: Optional[MergeGroupHandler] = None,
) -> Router:
    comment_handler = comment_handler or PRCommentHandler()
    merge_group_handler = merge_group_handler or MergeGroupHandler()

    router = Router()

    @router.register("issue_comment")
    async def on_issue_comment(event: Event, api: API):
        result = await comment_handler.handle(event.data, api)
        logger.debug(
            "issue_comment %s: result=%s reason=%s",
            event.delivery_id,
            result.result,
            result.reason,
        )

    @router.register("merge_group")
    async def on_merge_group(event: Event, api: API):
        result = await merge_group_handler.handle(event.data, api)
        logger.debug(
            "merge_group %s: result=%s checks=%s",
            event.delivery_id,
            result.result,
            result.dispatched,
        )

    return router
