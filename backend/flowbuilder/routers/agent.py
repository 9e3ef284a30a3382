"""AI Agent API routes: wires the ReAct agent to the HTTP layer."""
import asyncio
import logging
import threading
import uuid
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from flowbuilder.agent.react_agent import run_agent
from flowbuilder.deps import get_checkpoint_manager, get_db
from flowbuilder.schemas.agent import CancelResult, ChatMessage, ChatResponse
from flowbuilder.services.checkpoint_manager import CheckpointManager

logger = logging.getLogger(__name__)
router = APIRouter()

DISCONNECT_POLL_SECONDS = 0.5


async def watch_disconnect(request: Request, cancel: threading.Event, interval: float = DISCONNECT_POLL_SECONDS):
    """Set ``cancel`` once the client goes away."""
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected, cancelling agent turn")
            cancel.set()
            return
        await asyncio.sleep(interval)


@router.post("/chat", response_model=ChatResponse)
async def agent_chat(
    payload: ChatMessage,
    request: Request,
    db: Session = Depends(get_db),
    manager: CheckpointManager = Depends(get_checkpoint_manager),
):
    """Send a message to the AI agent; the whole turn runs under one checkpoint.

    The turn is rolled back if the client disconnects or calls
    ``POST /chat/{request_id}/cancel`` before it finishes.
    """
    request_id = payload.request_id or str(uuid.uuid4())
    runs = request.app.state.agent_runs
    try:
        cancel = runs.register(request_id)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Agent turn {request_id} is already running",
        )

    logger.info("Agent chat %s for case %s: %s", request_id, payload.case_id, payload.message)
    watcher = asyncio.create_task(watch_disconnect(request, cancel))
    try:
        result = await run_in_threadpool(
            run_agent,
            db=db,
            manager=manager,
            user_message=payload.message,
            case_id=payload.case_id,
            conversation_history=payload.history,
            client=getattr(request.app.state, "llm_client", None),
            should_abort=cancel.is_set,
            app_settings=request.app.state.settings,
        )
    finally:
        watcher.cancel()
        runs.discard(request_id)

    session_log = result.get("session_log", {})
    logger.info(
        "Agent session %s completed: %d tool calls, %d tokens, %dms",
        session_log.get("session_id", "?"),
        len(result.get("tool_calls", [])),
        session_log.get("total_tokens", 0),
        session_log.get("latency_ms", 0),
    )

    return ChatResponse(
        response=result["response"],
        tool_calls=result.get("tool_calls", []),
        checkpoint=result.get("checkpoint"),
        cancelled=result.get("cancelled", False),
        request_id=request_id,
    )


@router.post("/chat/{request_id}/cancel", response_model=CancelResult)
def cancel_chat(request_id: str, request: Request):
    """Ask a running turn to stop; its checkpoint is rolled back."""
    if not request.app.state.agent_runs.cancel(request_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No running agent turn {request_id}",
        )
    return CancelResult(request_id=request_id, cancelled=True)
