from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from hiretrack.api.deps import get_feed, resolve_scope
from hiretrack.auth import Actor, get_current_actor
from hiretrack.schemas import ActivityEventResponse
from hiretrack.services.feed import FeedHub, FeedSubscription

router = APIRouter()


async def _event_stream(subscription: FeedSubscription):
    async with subscription:
        async for activity in subscription:
            payload = ActivityEventResponse.model_validate(activity).model_dump_json()
            yield f"event: {activity.type}\ndata: {payload}\n\n"


@router.get("/recent", response_model=List[ActivityEventResponse])
async def recent_activity(
    scope: Optional[str] = Query(None),
    scope_id: Optional[str] = Query(None),
    feed: FeedHub = Depends(get_feed),
    actor: Actor = Depends(get_current_actor),
):
    resolved = resolve_scope(actor, scope, scope_id)
    return [ActivityEventResponse.model_validate(a) for a in feed.recent(resolved)]


@router.get("/stream")
async def stream_activity(
    scope: Optional[str] = Query(None),
    scope_id: Optional[str] = Query(None),
    feed: FeedHub = Depends(get_feed),
    actor: Actor = Depends(get_current_actor),
):
    """Server-Sent Events stream; the subscription ends when the client disconnects."""
    resolved = resolve_scope(actor, scope, scope_id)
    subscription = feed.subscribe(resolved)
    return StreamingResponse(
        _event_stream(subscription),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
