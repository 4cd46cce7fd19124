from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

import storefront.metrics  # noqa: F401  registers the counters

router = APIRouter(tags=["Admin"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
