"""Pydantic schemas for the agent chat endpoint."""
from typing import Any, Optional
from pydantic import BaseModel


class ChatMessage(BaseModel):
    message: str
    case_id: Optional[int] = None
    history: list[dict[str, Any]] = []
    # Client-chosen id used to cancel the turn while it runs; generated when omitted
    request_id: Optional[str] = None


class ChatResponse(BaseModel):
    response: str
    tool_calls: list[dict] = []
    checkpoint: Optional[dict[str, Any]] = None
    cancelled: bool = False
    request_id: Optional[str] = None


class CancelResult(BaseModel):
    request_id: str
    cancelled: bool
