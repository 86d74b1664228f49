from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from seekguard.services.streaming_engine import RangeStreamingEngine


router = APIRouter()


def get_engine(request: Request) -> RangeStreamingEngine:
    return request.app.state.engine


@router.get("/{name}")
@router.head("/{name}")
async def get_video(
    name: str,
    request: Request,
    engine: RangeStreamingEngine = Depends(get_engine),
) -> Response:
    """
    Serve a video by name with HTTP Range (bytes) support.

    Forward seeks relative to the client's last completed transfer are delayed
    before any byte is sent; see SeekThrottlePolicy.
    """
    return await engine.handle(request, name)
