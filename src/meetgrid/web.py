"""HTTP API for availability, recommendations, and manual blocks (FastAPI)."""

import hmac
import logging
from typing import Optional

from .config import WebConfig
from .core.service import SchedulingService
from .errors import InvalidInputError, MeetingNotFoundError

logger = logging.getLogger(__name__)

MAX_DURATION_MINUTES = 24 * 60


def create_app(service: SchedulingService, config: Optional[WebConfig] = None):
    """Build the FastAPI app. Requires the `web` extra."""
    try:
        from fastapi import FastAPI, HTTPException, Request
        from fastapi.middleware.cors import CORSMiddleware
        from pydantic import BaseModel
    except ImportError:
        raise ImportError("fastapi not installed. Run: pip install meetgrid[web]")

    from . import __version__

    config = config or WebConfig()
    app = FastAPI(title="meetgrid", version=__version__)
    if config.allowed_origins:
        if "*" in config.allowed_origins and config.api_key:
            logger.warning(
                "CORS allow_origins contains '*' while API key is set. "
                "This allows any website to call the API."
            )
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.allowed_origins,
            allow_methods=["GET", "POST", "PUT"],
            allow_headers=["Authorization", "Content-Type"],
        )

    def check_api_key(request: Request):
        if not config.api_key:
            return
        auth = request.headers.get("authorization", "")
        if not auth or not hmac.compare_digest(auth.replace("Bearer ", ""), config.api_key):
            raise HTTPException(status_code=401, detail="Invalid API key")

    def bad_request(exc: InvalidInputError) -> HTTPException:
        return HTTPException(status_code=400, detail={"reason": exc.reason, "message": str(exc)})

    class BlockModel(BaseModel):
        startTime: str
        endTime: str

    class ManualBlocksRequest(BaseModel):
        blocks: list[BlockModel]

    class SyncRequest(BaseModel):
        start: Optional[str] = None
        end: Optional[str] = None

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/meetings/{meeting_id}/availability")
    async def get_availability(
        meeting_id: str, request: Request, start: str = "", end: str = ""
    ):
        check_api_key(request)
        if bool(start) != bool(end):
            raise HTTPException(status_code=400, detail="start and end must be given together")
        try:
            view = await service.get_availability(
                meeting_id, (start, end) if start else None
            )
        except MeetingNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except InvalidInputError as e:
            raise bad_request(e)
        return view.to_dict()

    @app.get("/api/meetings/{meeting_id}/recommendations")
    async def get_recommendations(
        meeting_id: str, request: Request, duration: int = 60, tz: str = ""
    ):
        check_api_key(request)
        if duration > MAX_DURATION_MINUTES:
            raise HTTPException(status_code=400, detail=f"duration must be at most {MAX_DURATION_MINUTES}")
        try:
            result = await service.get_recommendations(meeting_id, duration, tz=tz or None)
        except MeetingNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except InvalidInputError as e:
            raise bad_request(e)
        return result.to_dict()

    @app.put("/api/meetings/{meeting_id}/participants/{uid}/manual-blocks")
    async def save_manual_blocks(
        meeting_id: str, uid: str, req: ManualBlocksRequest, request: Request
    ):
        check_api_key(request)
        try:
            saved = await service.save_manual_blocks(
                meeting_id, uid, [b.model_dump() for b in req.blocks]
            )
        except MeetingNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except InvalidInputError as e:
            raise bad_request(e)
        return {"status": "saved", "blocks": [b.to_dict() for b in saved]}

    @app.post("/api/users/{uid}/sync")
    async def sync_user(uid: str, req: SyncRequest, request: Request):
        check_api_key(request)
        try:
            result = await service.sync_user_calendars(uid, req.start, req.end)
        except InvalidInputError as e:
            raise bad_request(e)
        body = {
            "calendars": [c.id for c in result.calendars],
            "eventCount": result.event_count,
            "meetingsRefreshed": result.meetings_refreshed,
        }
        if result.refresh_error:
            body["refreshError"] = result.refresh_error
        return body

    return app
