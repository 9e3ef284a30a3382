"""saveView tool: create a view, or update one when ``id`` is given."""
from typing import Any

from flowbuilder.services.checkpoint_session import ToolContext
from flowbuilder.services.workflow_service import save_view


TOOL_SCHEMA = {
    "type": "function",
    "function": {
        "name": "saveView",
        "description": "Create or update a form view on a case. The model lists the field ids shown.",
        "parameters": {
            "type": "object",
            "properties": {
                "caseid": {"type": "integer", "description": "ID of the case."},
                "id": {"type": "integer", "description": "ID of an existing view to update."},
                "name": {"type": "string", "description": "View name."},
                "model": {
                    "type": "object",
                    "description": "Layout: {fields: [{fieldId, required}], layout: {...}}",
                },
            },
            "required": ["caseid", "name"],
        },
    },
}


def execute(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    view = save_view(
        ctx.db,
        int(args["caseid"]),
        name=args["name"],
        model=args.get("model"),
        view_id=args.get("id"),
        checkpoints=ctx.checkpoints,
    )
    return {"id": view.id, "name": view.name, "caseid": view.caseid}
