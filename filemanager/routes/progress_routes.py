"""Progress polling and event stream routes."""

import json

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from common.logging_config import get_logger
from filemanager.auth import verify_api_key
from filemanager.exceptions import NotFoundError
from filemanager.schemas.common import ApiResponse
from filemanager.schemas.transfers import ProgressResponse
from filemanager.service_locator import get_progress_registry

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/progress", tags=["Progress"], dependencies=[Depends(verify_api_key)])


@router.get("/{op_id}", response_model=ApiResponse)
def get_progress(op_id: str):
    """
    Current state of an upload, archive or extraction.

    Raises:
        - 404: Unknown operation id
    """
    record = get_progress_registry().require(op_id)
    return ApiResponse.ok(ProgressResponse.from_record(record).model_dump())


@router.get("/{op_id}/events")
async def progress_events(op_id: str):
    """
    Server-sent events with a snapshot every half second until the
    operation completes or fails.
    """
    registry = get_progress_registry()
    registry.require(op_id)

    async def event_stream():
        try:
            async for record in registry.awatch(op_id):
                yield f"data: {json.dumps(record.to_dict())}\n\n"
        except NotFoundError:
            logger.info(f"Progress record {op_id} disappeared while streaming")
            yield f"event: error\ndata: {json.dumps({'id': op_id, 'error': 'not found'})}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
