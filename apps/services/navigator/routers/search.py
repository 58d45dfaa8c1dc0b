"""
Search Router

Endpoints:
    GET /v1/search?q= - Run the engine cascade directly
"""

import logging

from fastapi import APIRouter, Depends, Query

from apps.services.navigator.dependencies import get_search
from apps.services.navigator.schemas import SearchResponse
from libs.search.cascade import SearchCascade

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/v1", tags=["search"])


@router.get("/search", response_model=SearchResponse)
async def search(
    q: str = Query(..., min_length=1, description="Search query"),
    cascade: SearchCascade = Depends(get_search),
) -> SearchResponse:
    """Results plus the full attempt log, successful or not."""
    outcome = await cascade.execute(q)
    return SearchResponse(query=q, results=outcome.results, log=outcome.log)
