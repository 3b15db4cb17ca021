from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from eventhub.realtime.registry import ChannelRegistry

router = APIRouter(prefix="/dev", tags=["dev"])


class ChannelsOut(BaseModel):
    connections: int
    channels: dict[str, int]


def _registry(request: Request) -> ChannelRegistry:
    return request.app.state.channels


@router.get("/realtime", response_model=ChannelsOut)
def dev_realtime_state(request: Request):
    registry = _registry(request)
    connection_ids = registry.members()
    channels: dict[str, int] = {}
    for connection_id in connection_ids:
        for channel in registry.channels_for(connection_id):
            channels[channel] = channels.get(channel, 0) + 1
    return ChannelsOut(connections=len(connection_ids), channels=channels)


class PingIn(BaseModel):
    channel: str | None = None
    text: str = "ping"


@router.post("/realtime/ping")
def dev_realtime_ping(payload: PingIn, request: Request):
    if payload.channel is not None and not payload.channel.strip():
        raise HTTPException(status_code=422, detail="channel must not be blank")
    delivered = _registry(request).publish(
        {"event": "ping", "data": payload.text},
        channel=payload.channel,
    )
    return {"delivered": delivered}
