"""
WebSocket chat endpoint - one topic-restricted conversation per connection.

Protocol:
    Server on connect:  {"type": "welcome", "message": {...}, "topic": "..."}
    Client frames:
        {"type": "ping"}                                 -> {"type": "pong"}
        {"type": "topic", "topic": ..., "keywords": [...], ...}
                                                         -> {"type": "welcome", ...}
        {"type": "message", "content": "..."}            -> event frames
    Event frames for a message, in order:
        user, validating, then either rejected, or text* followed by
        complete / error
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from cns.services.orchestrator import ConversationOrchestrator
from cns.services.relevance_gate import RelevanceGate
from config.config import TopicConfig
from utils.errors import ConversationBusyError, TopicConfigError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_friendly_error_message(error: Exception) -> str:
    """
    Convert technical error messages into user-friendly explanations.

    Args:
        error: The exception that occurred

    Returns:
        A friendly error message for the user
    """
    if isinstance(error, (ConversationBusyError, TopicConfigError, ValueError)):
        return str(error)

    error_str = str(error).lower()

    if "rate limit" in error_str or "usage limit" in error_str:
        return ("I'm currently rate limited. Please try again in a few moments.")

    if "authentication" in error_str or "401" in error_str:
        return ("There's an issue with my API authentication. "
                "Please check the API key configuration.")

    if "timeout" in error_str:
        return ("The request took too long to process. Please try again.")

    if "connection" in error_str or "network" in error_str:
        return ("I'm having trouble connecting to the AI service. "
                "Please check your internet connection and try again.")

    return ("I encountered an unexpected error while processing your message. "
            "Please try again.")


def create_orchestrator(websocket: WebSocket) -> ConversationOrchestrator:
    """Build a conversation from the application state."""
    state = websocket.app.state
    gate = RelevanceGate(loader=state.model_loader, settings=state.config.validation)
    return ConversationOrchestrator(
        topic=state.config.topic,
        gate=gate,
        llm_provider=state.llm_provider,
    )


def welcome_frame(orchestrator: ConversationOrchestrator) -> Dict[str, Any]:
    return {
        "type": "welcome",
        "topic": orchestrator.topic.topic,
        "assistant_name": orchestrator.topic.assistant_name,
        "message": orchestrator.messages[0].to_dict(),
    }


class WebSocketChatHandler:
    """Handler for one WebSocket chat connection."""

    def __init__(self, websocket: WebSocket, orchestrator: ConversationOrchestrator):
        self.websocket = websocket
        self.orchestrator = orchestrator

    async def process_message(self, message_data: Dict[str, Any]) -> None:
        content = message_data.get("content")
        if not isinstance(content, str):
            await self.websocket.send_json({"type": "error", "message": "Message content must be a string"})
            return

        try:
            async for event in self.orchestrator.handle_user_message(content):
                await self.websocket.send_json(event.to_dict())
        except (ValueError, ConversationBusyError) as e:
            await self.websocket.send_json({"type": "error", "message": str(e)})

    async def change_topic(self, message_data: Dict[str, Any]) -> None:
        payload = {k: v for k, v in message_data.items() if k != "type"}
        try:
            topic = TopicConfig.from_dict(payload)
            self.orchestrator.set_topic(topic)
        except (TopicConfigError, ConversationBusyError) as e:
            await self.websocket.send_json({"type": "error", "message": str(e)})
            return
        await self.websocket.send_json(welcome_frame(self.orchestrator))

    async def run(self) -> None:
        """Main receive loop; messages are handled one at a time."""
        await self.websocket.send_json(welcome_frame(self.orchestrator))

        while True:
            message_data = await self.websocket.receive_json()
            if not isinstance(message_data, dict):
                await self.websocket.send_json({"type": "error", "message": "Frames must be JSON objects"})
                continue

            frame_type = message_data.get("type")
            if frame_type == "ping":
                await self.websocket.send_json({"type": "pong"})
            elif frame_type == "topic":
                await self.change_topic(message_data)
            elif frame_type == "message":
                logger.info(f"Received message: {str(message_data.get('content', ''))[:100]}")
                await self.process_message(message_data)
            else:
                await self.websocket.send_json({
                    "type": "error",
                    "message": f"Unknown message type: {frame_type}"
                })


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket):
    await websocket.accept()
    try:
        handler = WebSocketChatHandler(websocket, create_orchestrator(websocket))
        await handler.run()
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
        try:
            await websocket.send_json({"type": "error", "message": get_friendly_error_message(e)})
            await websocket.close()
        except Exception:
            logger.debug("Could not deliver error frame; connection already closed")
