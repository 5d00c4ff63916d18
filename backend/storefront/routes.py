"""
Storefront Generation API Routes
店铺代码生成 API 路由

Endpoints:
- POST /api/ai/storefront-generate  - Generate / edit storefront code (event stream)
- GET  /api/ai/health               - Health check
"""

import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from .controller import StorefrontGenerationController
from .dependencies import get_controller
from .events import EventStream
from .models import StorefrontGenerateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["storefront"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/health")
async def health_check():
    return {
        "success": True,
        "status": "healthy",
        "module": "storefront_generator",
        "timestamp": datetime.now().isoformat(),
    }


@router.post("/storefront-generate")
async def storefront_generate(
    body: StorefrontGenerateRequest,
    controller: StorefrontGenerationController = Depends(get_controller),
):
    """
    Generate or edit storefront code.

    Streams `data: {"event": ..., ...}` frames until one `complete` or
    `error` event has been sent.
    """
    request = body.to_generation_request()
    if not request.prompt:
        raise HTTPException(status_code=400, detail="prompt must not be empty")

    logger.info(
        f"[Storefront] Request: vendor={request.vendor_id} "
        f"code={bool(request.full_code)} url={request.reference_url} manual={request.manual_mode}"
    )

    async def event_source():
        events = EventStream()
        task = asyncio.create_task(controller.run(request, events))
        try:
            async for frame in events.frames():
                yield frame
        finally:
            if not task.done():
                if events.terminated:
                    # Terminal event already sent; only the error grace delay remains
                    await task
                else:
                    logger.info("[Storefront] Client disconnected, cancelling generation")
                    task.cancel()
            events.close()

    return StreamingResponse(event_source(), media_type="text/event-stream", headers=STREAM_HEADERS)
