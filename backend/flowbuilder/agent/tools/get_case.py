"""getCase tool: read a case with its model."""
from typing import Any

from flowbuilder.services.checkpoint_session import ToolContext
from flowbuilder.services.workflow_service import get_case


TOOL_SCHEMA = {
    "type": "function",
    "function": {
        "name": "getCase",
        "description": "Fetch a workflow case including its stage/process/step model.",
        "parameters": {
            "type": "object",
            "properties": {
                "caseid": {"type": "integer", "description": "ID of the case."},
            },
            "required": ["caseid"],
        },
    },
}


def execute(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    case = get_case(ctx.db, int(args["caseid"]))
    return {
        "id": case.id,
        "name": case.name,
        "description": case.description,
        "model": case.model,
    }
