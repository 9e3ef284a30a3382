"""ReAct Agent: Think → Act → Observe loop using LLM tool-calling.

One user turn runs under one checkpoint: every mutation the tools make is
captured in the undo log, the checkpoint is committed when the model produces
its final answer, and rolled back when the LLM call fails, an unexpected error
escapes the loop, or the caller cancels the turn.  Without a case id there is
nothing to scope the checkpoint to, so the turn runs unprotected.
"""
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from openai import OpenAI
from sqlalchemy.orm import Session

from flowbuilder.agent.registry import TOOL_SCHEMAS, execute_tool
from flowbuilder.config import Settings, settings
from flowbuilder.models.checkpoint import CheckpointSource
from flowbuilder.services.checkpoint_manager import DEFAULT_DESCRIPTION, CheckpointManager
from flowbuilder.services.checkpoint_session import CheckpointSession, ToolContext

logger = logging.getLogger(__name__)

# ── System prompt ──────────────────────────────────────────────────
SYSTEM_PROMPT = """You are a workflow-building assistant for a low-code application builder.

CAPABILITIES:
- createCase / getCase / saveCase: create and restructure a workflow case (stages, processes, steps)
- listFields / saveFields / deleteField: manage the data fields of a case
- saveView / deleteView: manage the form views that show those fields

RULES:
1. Read the current case (getCase, listFields) before changing it.
2. Save all new fields in one saveFields call where possible.
3. Never invent ids; use the ids returned by earlier tool calls.
4. Keep responses concise and confirm what was changed.

CONTEXT:
- Case ID: {case_id}
- Current UTC time: {current_time}
"""


def _result(response: str, tool_calls: list, session_log: dict, checkpoint: Optional[dict], **extra) -> dict[str, Any]:
    return {
        "response": response,
        "tool_calls": tool_calls,
        "checkpoint": checkpoint,
        "cancelled": extra.pop("cancelled", False),
        "session_log": session_log,
        **extra,
    }


def run_agent(
    db: Session,
    manager: CheckpointManager,
    user_message: str,
    case_id: Optional[int] = None,
    conversation_history: Optional[list[dict]] = None,
    client: Optional[Any] = None,
    should_abort: Optional[Callable[[], bool]] = None,
    app_settings: Settings = settings,
) -> dict[str, Any]:
    """Execute the ReAct loop for a single user message.

    Returns:
        {
            "response": str,             # Final text for the user
            "tool_calls": list[dict],     # List of tools called
            "checkpoint": dict | None,    # {"id", "status"} when a checkpoint was opened
            "cancelled": bool,
            "session_log": dict,          # Observability data
        }
    """
    session_id = str(uuid.uuid4())
    session_log = {
        "session_id": session_id,
        "started_at": datetime.now(timezone.utc).isoformat(),
        "case_id": case_id,
        "user_message": user_message,
        "iterations": [],
        "total_tokens": 0,
        "latency_ms": 0,
    }

    start_time = time.time()

    system = SYSTEM_PROMPT.format(
        case_id=case_id if case_id is not None else "none (create a case first)",
        current_time=datetime.now(timezone.utc).isoformat(),
    )
    messages = [{"role": "system", "content": system}]
    if conversation_history:
        messages.extend(conversation_history)
    messages.append({"role": "user", "content": user_message})

    if client is None and not app_settings.OPENAI_API_KEY:
        logger.warning("OpenAI API key not configured, returning placeholder response")
        return _result(
            "The AI assistant isn't configured yet. Add an OpenAI API key to the "
            "backend `.env` file to enable it; cases, fields and views can still "
            "be edited directly.",
            [],
            session_log,
            None,
        )

    client = client or OpenAI(api_key=app_settings.OPENAI_API_KEY)
    checkpoints = CheckpointSession(manager)
    ctx = ToolContext(db=db, checkpoints=checkpoints)
    all_tool_calls: list[dict] = []

    if case_id is not None:
        checkpoint_id = checkpoints.begin(
            case_id,
            DEFAULT_DESCRIPTION,
            user_command=user_message,
            source=CheckpointSource.LLM,
        )
        session_log["checkpoint_id"] = checkpoint_id
    else:
        logger.warning("[Session %s] No case id, tool calls will not be checkpointed", session_id)
        checkpoint_id = None

    def finish(outcome: str) -> Optional[dict]:
        session_log["latency_ms"] = int((time.time() - start_time) * 1000)
        if checkpoint_id is None:
            return None
        if outcome == "commit":
            checkpoints.commit()
            return {"id": checkpoint_id, "status": "historical"}
        checkpoints.rollback()
        return {"id": checkpoint_id, "status": "rolled_back"}

    def aborted() -> bool:
        return should_abort is not None and should_abort()

    try:
        # ── ReAct Loop ─────────────────────────────────────────────
        for iteration in range(app_settings.AGENT_MAX_ITERATIONS):
            if aborted():
                logger.info("[Session %s] Cancelled before iteration %d", session_id, iteration + 1)
                return _result("Request cancelled.", all_tool_calls, session_log, finish("rollback"), cancelled=True)

            iter_log: dict[str, Any] = {"iteration": iteration + 1, "tool_calls": []}

            try:
                response = client.chat.completions.create(
                    model=app_settings.OPENAI_MODEL,
                    messages=messages,
                    tools=TOOL_SCHEMAS,
                    tool_choice="auto",
                )
            except Exception as e:
                logger.error("LLM API error: %s", e)
                session_log["error"] = str(e)
                return _result(
                    f"I'm having trouble connecting to the AI service: {e}",
                    all_tool_calls,
                    session_log,
                    finish("rollback"),
                )

            message = response.choices[0].message

            if getattr(response, "usage", None):
                session_log["total_tokens"] += response.usage.total_tokens

            if not message.tool_calls:
                # No tool calls, the model produced a final response
                session_log["iterations"].append(iter_log)
                checkpoint = finish("commit")
                logger.info(
                    "[Session %s] Agent finished in %d iterations, %d tokens",
                    session_id,
                    iteration + 1,
                    session_log["total_tokens"],
                )
                return _result(message.content or "Done!", all_tool_calls, session_log, checkpoint)

            messages.append(message.model_dump())

            for tool_call in message.tool_calls:
                fn_name = tool_call.function.name
                try:
                    fn_args = json.loads(tool_call.function.arguments or "{}")
                except json.JSONDecodeError:
                    fn_args = {}

                tool_log = {"tool": fn_name, "args": fn_args, "result": None, "error": None}
                logger.info("[Session %s] Tool call: %s(%s)", session_id, fn_name, fn_args)

                try:
                    result = execute_tool(ctx, fn_name, fn_args)
                    tool_log["result"] = result
                    result_str = json.dumps(result, default=str)
                except Exception as e:
                    # Reported back to the model; the turn continues
                    db.rollback()
                    logger.error("Tool %s error: %s", fn_name, e)
                    tool_log["error"] = str(e)
                    result_str = json.dumps({"error": str(e)})

                all_tool_calls.append(tool_log)
                iter_log["tool_calls"].append(tool_log)
                messages.append({"role": "tool", "tool_call_id": tool_call.id, "content": result_str})

            session_log["iterations"].append(iter_log)

            if aborted():
                logger.info("[Session %s] Cancelled after tool batch", session_id)
                return _result("Request cancelled.", all_tool_calls, session_log, finish("rollback"), cancelled=True)

    except Exception:
        logger.error("[Session %s] Agent failed, rolling back", session_id, exc_info=True)
        if checkpoints.is_active:
            try:
                checkpoints.rollback()
            except Exception:
                logger.error("[Session %s] Rollback after failure also failed", session_id, exc_info=True)
        raise

    # Safety: max iterations reached; the tool work so far stands
    logger.warning("[Session %s] Hit max iterations (%d)", session_id, app_settings.AGENT_MAX_ITERATIONS)
    return _result(
        "I've been working on your request but it's taking longer than expected. Could you try being more specific?",
        all_tool_calls,
        session_log,
        finish("commit"),
    )
