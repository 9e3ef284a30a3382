"""deleteView tool."""
from typing import Any

from flowbuilder.services.checkpoint_session import ToolContext
from flowbuilder.services.workflow_service import delete_view


TOOL_SCHEMA = {
    "type": "function",
    "function": {
        "name": "deleteView",
        "description": "Delete a view from a case.",
        "parameters": {
            "type": "object",
            "properties": {
                "caseid": {"type": "integer", "description": "ID of the case the view belongs to."},
                "id": {"type": "integer", "description": "ID of the view to delete."},
            },
            "required": ["caseid", "id"],
        },
    },
}


def execute(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    view = delete_view(ctx.db, int(args["caseid"]), int(args["id"]), checkpoints=ctx.checkpoints)
    return {"success": True, "deletedId": view.id, "name": view.name}
