from fastapi import APIRouter, Depends, HTTPException
import logging

from common.exceptions import BackendError, SessionNotFound, TransportError
from app.schemas.session import ConnectRequest, SessionList, SessionMappingResponse, TmuxSessionInfo
from app.services.bridge_service import BridgeService, get_bridge_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/sessions", response_model=SessionList)
async def list_sessions(bridge: BridgeService = Depends(get_bridge_service)):
    """List tmux sessions available for connecting"""
    try:
        sessions = await bridge.list_sessions()
    except BackendError as e:
        logger.error(f"Failed to list tmux sessions: {e}")
        raise HTTPException(status_code=502, detail=e.get_user_friendly_message())

    return SessionList(
        sessions=[
            TmuxSessionInfo(index=i, **session.to_dict())
            for i, session in enumerate(sessions, start=1)
        ],
        total_count=len(sessions),
    )


@router.post("/connect", response_model=SessionMappingResponse, status_code=201)
async def connect_session(request: ConnectRequest, bridge: BridgeService = Depends(get_bridge_service)):
    """Start a chat thread bound to a tmux session"""
    try:
        mapping, working_dir = await bridge.connect(request.channel_id, request.target)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BackendError as e:
        logger.error(f"Failed to connect to {request.target}: {e}")
        raise HTTPException(status_code=502, detail=e.get_user_friendly_message())
    except TransportError as e:
        logger.error(f"Could not post connect message: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return SessionMappingResponse(working_directory=working_dir, **mapping.to_dict())
