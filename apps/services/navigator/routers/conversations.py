"""
Conversation Router

Endpoints:
    POST /v1/conversations/{conversation_id}/turns - Run one user turn
    POST /v1/conversations/{conversation_id}/stop  - Cancel the in-flight turn
    GET  /v1/conversations/{conversation_id}/tabs  - List the session's tabs
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from apps.services.navigator.dependencies import get_orchestrator, get_session_store
from apps.services.navigator.schemas import StopResponse, TabsResponse, TurnRequest, TurnResponse
from libs.navigation.orchestrator import NavigationOrchestrator
from libs.navigation.session import SessionStore

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/v1/conversations", tags=["conversations"])


@router.post("/{conversation_id}/turns", response_model=TurnResponse)
async def run_turn(
    conversation_id: str,
    request: TurnRequest,
    orchestrator: NavigationOrchestrator = Depends(get_orchestrator),
    store: SessionStore = Depends(get_session_store),
) -> TurnResponse:
    """
    Send the user's text to the model and execute the directives it emits.

    A second turn while one is running is refused with 409; use /stop first.
    """
    session = store.get_or_create(conversation_id, request.user_id)
    if session.current_turn is not None:
        raise HTTPException(status_code=409, detail="A turn is already running for this conversation")

    result = await orchestrator.run_turn(session, request.text)
    return TurnResponse.from_result(result, session.tabs.list())


@router.post("/{conversation_id}/stop", response_model=StopResponse)
async def stop_turn(
    conversation_id: str,
    orchestrator: NavigationOrchestrator = Depends(get_orchestrator),
    store: SessionStore = Depends(get_session_store),
) -> StopResponse:
    session = store.get(conversation_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown conversation: {conversation_id}")

    stopped = orchestrator.stop(session)
    logger.info(f"[Navigator] Stop requested for {conversation_id}: stopped={stopped}")
    return StopResponse(conversation_id=conversation_id, stopped=stopped)


@router.get("/{conversation_id}/tabs", response_model=TabsResponse)
async def list_tabs(
    conversation_id: str,
    store: SessionStore = Depends(get_session_store),
) -> TabsResponse:
    session = store.get(conversation_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown conversation: {conversation_id}")

    active = session.tabs.active
    return TabsResponse(
        conversation_id=conversation_id,
        tabs=session.tabs.list(),
        active_tab_id=active.id if active else None,
    )
