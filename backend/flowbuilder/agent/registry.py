"""Tool registry shared by the agent loop and the MCP endpoint."""
import logging
from typing import Any

from flowbuilder.agent.tools import (
    create_case,
    delete_field,
    delete_view,
    get_case,
    list_fields,
    save_case,
    save_fields,
    save_view,
)
from flowbuilder.exceptions import UnknownToolError
from flowbuilder.services.checkpoint_session import ToolContext

logger = logging.getLogger(__name__)

TOOLS = {
    "createCase": create_case,
    "getCase": get_case,
    "saveCase": save_case,
    "listFields": list_fields,
    "saveFields": save_fields,
    "deleteField": delete_field,
    "saveView": save_view,
    "deleteView": delete_view,
}

# Tools that write to the database and therefore run under a checkpoint
MODIFICATION_TOOLS = frozenset(
    {"createCase", "saveCase", "saveFields", "deleteField", "saveView", "deleteView"}
)

TOOL_SCHEMAS = [mod.TOOL_SCHEMA for mod in TOOLS.values()]


def get_tool(name: str):
    try:
        return TOOLS[name]
    except KeyError:
        raise UnknownToolError(name) from None


def execute_tool(ctx: ToolContext, name: str, args: dict[str, Any]) -> dict[str, Any]:
    """Run one tool, recording it on the open checkpoint when it modifies data."""
    tool = get_tool(name)
    if name in MODIFICATION_TOOLS:
        ctx.checkpoints.record_tool(name)
    logger.debug("Executing tool %s(%s)", name, args)
    return tool.execute(ctx, args)
