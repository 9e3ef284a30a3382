"""createCase tool: start a new workflow case.

No case id exists before this call, so it never runs under a checkpoint.
"""
from typing import Any

from flowbuilder.services.checkpoint_session import ToolContext
from flowbuilder.services.workflow_service import create_case


TOOL_SCHEMA = {
    "type": "function",
    "function": {
        "name": "createCase",
        "description": (
            "Create a new workflow case with a name, description and an optional "
            "initial stage model. Returns the new case id."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Case name."},
                "description": {"type": "string", "description": "What the workflow is for."},
                "model": {
                    "type": "object",
                    "description": "Workflow model: {stages: [{name, processes: [{name, steps: [...]}]}]}",
                },
            },
            "required": ["name"],
        },
    },
}


def execute(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    case = create_case(
        ctx.db,
        name=args["name"],
        description=args.get("description"),
        model=args.get("model"),
        checkpoints=ctx.checkpoints,
    )
    return {"id": case.id, "name": case.name, "description": case.description}
