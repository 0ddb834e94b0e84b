from fastapi import APIRouter, Depends, HTTPException
import logging

from common.exceptions import BackendError, MappingNotFound, SessionNotFound, TransportError
from app.schemas.execution import ExecutionAccepted, ThreadMessage
from app.services.bridge_service import BridgeService, get_bridge_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{thread_key}/messages", response_model=ExecutionAccepted, status_code=202)
async def post_thread_message(
    thread_key: str,
    message: ThreadMessage,
    bridge: BridgeService = Depends(get_bridge_service)
):
    """Send a thread message to its tmux session and start monitoring the response"""
    try:
        key = await bridge.submit(thread_key, message.text)
    except MappingNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SessionNotFound as e:
        raise HTTPException(status_code=410, detail=str(e))
    except BackendError as e:
        logger.error(f"Failed to submit message for thread {thread_key}: {e}")
        raise HTTPException(status_code=502, detail=e.get_user_friendly_message())
    except TransportError as e:
        raise HTTPException(status_code=502, detail=str(e))

    mapping = bridge.mappings.lookup(thread_key)
    return ExecutionAccepted(execution_key=key, tmux_session=mapping.tmux_session if mapping else "")
