"""saveCase tool: update a case's name, description or workflow model."""
from typing import Any

from flowbuilder.services.checkpoint_session import ToolContext
from flowbuilder.services.workflow_service import update_case


TOOL_SCHEMA = {
    "type": "function",
    "function": {
        "name": "saveCase",
        "description": (
            "Update an existing case. Only the given keys change; pass the complete "
            "model when restructuring stages, processes or steps."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "caseid": {"type": "integer", "description": "ID of the case to update."},
                "name": {"type": "string"},
                "description": {"type": "string"},
                "model": {"type": "object", "description": "Full workflow model."},
            },
            "required": ["caseid"],
        },
    },
}


def execute(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    updates = {k: args[k] for k in ("name", "description", "model") if k in args}
    case = update_case(ctx.db, int(args["caseid"]), updates, checkpoints=ctx.checkpoints)
    return {"id": case.id, "name": case.name, "updated": sorted(updates)}
