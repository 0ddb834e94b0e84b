from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class TmuxSessionInfo(BaseModel):
    """Schema for one tmux session"""
    index: int = Field(..., description="1-based position, usable as a connect target")
    name: str
    window_count: int
    created_at: Optional[datetime]
    is_attached: bool


class SessionList(BaseModel):
    """Response schema for the tmux session list"""
    sessions: List[TmuxSessionInfo]
    total_count: int


class ConnectRequest(BaseModel):
    """Request schema for binding a chat thread to a tmux session"""
    channel_id: str = Field(..., description="Chat channel that will host the thread")
    target: str = Field(..., description="Session name or 1-based index from the session list")


class SessionMappingResponse(BaseModel):
    """Response schema for a thread -> tmux session mapping"""
    thread_key: str
    tmux_session: str
    channel_id: str
    created_at: datetime
    last_activity: datetime
    working_directory: Optional[str] = None
