"""listFields tool."""
from typing import Any

from flowbuilder.services.checkpoint_session import ToolContext
from flowbuilder.services.workflow_service import list_fields


TOOL_SCHEMA = {
    "type": "function",
    "function": {
        "name": "listFields",
        "description": "List the fields defined on a case, in display order.",
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
    fields = list_fields(ctx.db, int(args["caseid"]))
    return {
        "fields": [
            {
                "id": f.id,
                "name": f.name,
                "type": f.type,
                "label": f.label,
                "required": f.required,
                "sort_order": f.sort_order,
            }
            for f in fields
        ]
    }
