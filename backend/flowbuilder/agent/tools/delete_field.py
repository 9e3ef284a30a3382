"""deleteField tool."""
from typing import Any

from flowbuilder.services.checkpoint_session import ToolContext
from flowbuilder.services.workflow_service import delete_field


TOOL_SCHEMA = {
    "type": "function",
    "function": {
        "name": "deleteField",
        "description": "Delete a field from a case. Views referencing it keep their layout.",
        "parameters": {
            "type": "object",
            "properties": {
                "caseid": {"type": "integer", "description": "ID of the case the field belongs to."},
                "id": {"type": "integer", "description": "ID of the field to delete."},
            },
            "required": ["caseid", "id"],
        },
    },
}


def execute(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    field = delete_field(ctx.db, int(args["caseid"]), int(args["id"]), checkpoints=ctx.checkpoints)
    return {"success": True, "deletedId": field.id, "name": field.name}
