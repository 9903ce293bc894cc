from fastapi import APIRouter, Depends, HTTPException

from canteen.deps import get_channel, require_token
from canteen.services.store import EventChannel

router = APIRouter(prefix="/events", tags=["events"])


@router.post("/{topic}")
async def publish(
    topic: str,
    body: dict | None = None,
    channel: EventChannel = Depends(get_channel),
    token: str = Depends(require_token),
):
    """Other admin screens call this after menu / reservation / top-up writes."""
    if topic not in channel.topics:
        raise HTTPException(404, detail=f"unknown topic: {topic}")
    # subscribers refresh upstream on behalf of the caller
    delivered = await channel.publish(topic, body, token=token)
    return {"topic": topic, "delivered": delivered}
