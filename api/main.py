from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Depends
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
import asyncio
import json
import logging
import os
import sys

# Make the project root (common/, session_monitor/, tmux_connector.py) importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.config import config
from common.exceptions import BridgeException
from session_monitor.terminal_monitor import TerminalMonitor
from tmux_connector import TmuxConnector

from app.config import settings
from app.services.bridge_service import BridgeService, get_bridge_service, set_bridge_service
from app.services.chat_transports import build_transport
from app.services.session_mapping import SessionMappingStore
from app.services.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


def create_bridge_service() -> BridgeService:
    """Wire the tmux connector, mapping store, transport and monitor together"""
    connector = TmuxConnector(capture_history_lines=config.capture_history_lines)
    mappings = SessionMappingStore(settings.mapping_file)
    mappings.load()
    transport = build_transport(settings)
    monitor = TerminalMonitor(connector, transport, config.monitor_config())
    return BridgeService(connector, mappings, monitor, transport)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    config.setup_logging(None if config.debug else settings.log_level)
    logger.info("Starting up tmux-chat-bridge API...")
    bridge = create_bridge_service()
    await bridge.connector.start()
    bridge.start_cleanup(settings.mapping_cleanup_interval_minutes, settings.mapping_max_inactive_minutes)
    set_bridge_service(bridge)
    yield
    # Shutdown
    logger.info("Shutting down tmux-chat-bridge API...")
    await bridge.stop()
    await bridge.connector.close()
    set_bridge_service(None)


app = FastAPI(
    title="tmux-chat-bridge API",
    description="Chat control plane for interactive programs running in tmux",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from app.api import sessions, threads, executions, system, slack_events

# Include routers
app.include_router(sessions.router, prefix="/api", tags=["Sessions"])
app.include_router(threads.router, prefix="/api/threads", tags=["Threads"])
app.include_router(executions.router, prefix="/api/executions", tags=["Executions"])
app.include_router(system.router, prefix="/api/system", tags=["System"])
app.include_router(slack_events.router, prefix="/api/slack", tags=["Slack"])


async def handle_client_frame(websocket: WebSocket, bridge: BridgeService, data: str):
    """Route one inbound frame: thread messages go to tmux, anything else is a heartbeat"""
    try:
        frame = json.loads(data)
    except ValueError:
        frame = None

    if not isinstance(frame, dict) or frame.get("type") != "message":
        await websocket.send_text(f"heartbeat: {data}")
        return

    thread_key = frame.get("thread_key", "")
    text = frame.get("text", "")
    try:
        key = await bridge.submit(thread_key, text)
        await websocket.send_text(json.dumps({"type": "accepted", "thread_key": thread_key,
                                              "execution_key": key}))
    except BridgeException as e:
        logger.warning(f"[WebSocket] Rejected message for thread {thread_key}: {e}")
        await websocket.send_text(json.dumps({"type": "error", "thread_key": thread_key,
                                              "message": str(e)}))


@app.websocket("/ws/channels/{channel_id}")
async def websocket_endpoint(websocket: WebSocket, channel_id: str,
                             bridge: BridgeService = Depends(get_bridge_service)):
    """WebSocket endpoint for chat clients of one channel"""
    websocket_manager = WebSocketManager.get_instance()

    try:
        await websocket_manager.connect(websocket, channel_id)

        # Keep connection alive and handle any messages
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=60.0)
                logger.debug(f"[WebSocket] Received message from client: {data}")
                await handle_client_frame(websocket, bridge, data)

            except asyncio.TimeoutError:
                # No message received in 60 seconds, that's fine - just continue
                continue

            except WebSocketDisconnect:
                logger.info(f"[WebSocket] Client disconnected from channel {channel_id}")
                break

    except WebSocketDisconnect:
        logger.info(f"[WebSocket] Connection closed during setup for channel {channel_id}")
    finally:
        websocket_manager.disconnect(websocket, channel_id)


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "version": "1.0.0",
        "tmux_chat_bridge": "available"
    }
