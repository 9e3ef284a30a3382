"""saveFields tool: create or update several fields in one call.

Each insert or update is captured on the open checkpoint by the service layer.
"""
from typing import Any

from flowbuilder.services.checkpoint_session import ToolContext
from flowbuilder.services.workflow_service import save_fields


TOOL_SCHEMA = {
    "type": "function",
    "function": {
        "name": "saveFields",
        "description": (
            "Create or update fields on a case. Items with an id update that field; "
            "items without one are matched by name or created."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "caseid": {"type": "integer", "description": "ID of the case."},
                "fields": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "integer"},
                            "name": {"type": "string"},
                            "type": {
                                "type": "string",
                                "enum": ["Text", "TextArea", "Integer", "Decimal", "Date", "Checkbox", "Dropdown"],
                            },
                            "label": {"type": "string"},
                            "required": {"type": "boolean"},
                            "sort_order": {"type": "integer"},
                            "options": {"type": "array", "items": {"type": "string"}},
                            "description": {"type": "string"},
                        },
                        "required": ["name"],
                    },
                },
            },
            "required": ["caseid", "fields"],
        },
    },
}


def execute(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    fields = save_fields(ctx.db, int(args["caseid"]), args["fields"], checkpoints=ctx.checkpoints)
    return {"ids": [f.id for f in fields], "fields": [{"id": f.id, "name": f.name} for f in fields]}
