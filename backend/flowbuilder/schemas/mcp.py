"""JSON-RPC 2.0 envelopes for the MCP endpoint."""
from typing import Any, Optional, Union
from pydantic import BaseModel


class JsonRpcRequest(BaseModel):
    jsonrpc: str = "2.0"
    id: Optional[Union[int, str]] = None
    method: str
    params: dict[str, Any] = {}


class ToolCallParams(BaseModel):
    name: str
    arguments: dict[str, Any] = {}
