"""MCP endpoint: JSON-RPC 2.0 over HTTP exposing the workflow tools.

A modification tool called with a ``caseid`` argument runs under its own
checkpoint: committed when the tool succeeds, rolled back when it raises.
"""
import json
import logging
from typing import Any
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from flowbuilder.agent.registry import MODIFICATION_TOOLS, TOOLS, execute_tool
from flowbuilder.deps import get_checkpoint_manager, get_db
from flowbuilder.models.checkpoint import CheckpointSource
from flowbuilder.schemas.mcp import JsonRpcRequest, ToolCallParams
from flowbuilder.services.checkpoint_manager import CheckpointManager
from flowbuilder.services.checkpoint_session import CheckpointSession, ToolContext

logger = logging.getLogger(__name__)
router = APIRouter()

PROTOCOL_VERSION = "2024-11-05"
SERVER_INFO = {"name": "workflow-tools-server", "version": "1.0.0"}

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def _ok(request_id, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error(request_id, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def _command_summary(name: str, args: dict[str, Any]) -> str:
    return f"MCP {name}({json.dumps(args, default=str)[:100]}...)"


def _call_tool(
    request_id,
    params: ToolCallParams,
    db: Session,
    manager: CheckpointManager,
) -> dict[str, Any]:
    name, args = params.name, params.arguments
    if name not in TOOLS:
        return _error(request_id, METHOD_NOT_FOUND, f"Tool {name} not found")

    checkpoints = CheckpointSession(manager)
    ctx = ToolContext(db=db, checkpoints=checkpoints)

    caseid = args.get("caseid")
    if name in MODIFICATION_TOOLS and caseid is None:
        logger.warning("MCP tool %s called without caseid; running without a checkpoint", name)

    try:
        if name in MODIFICATION_TOOLS and caseid is not None:
            checkpoints.begin(
                int(caseid),
                f"MCP Tool: {name}",
                user_command=_command_summary(name, args),
                source=CheckpointSource.MCP,
            )
        result = execute_tool(ctx, name, args)
    except Exception as e:
        db.rollback()
        if checkpoints.is_active:
            try:
                checkpoints.rollback()
                logger.info("Rolled back checkpoint for MCP tool %s due to error", name)
            except Exception:
                logger.error("Failed to rollback checkpoint for MCP tool %s", name, exc_info=True)
        logger.error("MCP tool error: %s: %s", name, e)
        return _error(request_id, INTERNAL_ERROR, f"Tool execution failed: {e}")

    if checkpoints.is_active:
        checkpoints.commit()
        logger.info("Committed checkpoint for MCP tool %s", name)

    return _ok(
        request_id,
        {"content": [{"type": "text", "text": json.dumps(result, indent=2, default=str)}]},
    )


@router.post("")
def handle_mcp(
    payload: JsonRpcRequest,
    db: Session = Depends(get_db),
    manager: CheckpointManager = Depends(get_checkpoint_manager),
):
    logger.info("MCP request: %s (id=%s)", payload.method, payload.id)

    if payload.method == "initialize":
        return _ok(
            payload.id,
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
                "serverInfo": SERVER_INFO,
            },
        )

    if payload.method == "tools/list":
        return _ok(
            payload.id,
            {
                "tools": [
                    {
                        "name": mod.TOOL_SCHEMA["function"]["name"],
                        "description": mod.TOOL_SCHEMA["function"]["description"],
                        "inputSchema": mod.TOOL_SCHEMA["function"]["parameters"],
                    }
                    for mod in TOOLS.values()
                ]
            },
        )

    if payload.method == "resources/list":
        return _ok(payload.id, {"resources": []})

    if payload.method == "tools/call":
        try:
            params = ToolCallParams.model_validate(payload.params)
        except ValueError as e:
            return _error(payload.id, INVALID_PARAMS, f"Invalid params: {e}")
        return _call_tool(payload.id, params, db, manager)

    return _error(payload.id, METHOD_NOT_FOUND, "Method not found")
