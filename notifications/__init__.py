"""
Notification channel for the landscape designer backend.

Pushes transient UI notifications (toasts) and usage updates to browsers
over WebSocket connections.
"""

from .manager import (
    MessageType,
    ToastLevel,
    WebSocketManager,
    WebSocketMessage,
    notify_toast,
    notify_usage,
    user_channel,
    ws_manager,
)

__all__ = [
    "MessageType",
    "ToastLevel",
    "WebSocketManager",
    "WebSocketMessage",
    "notify_toast",
    "notify_usage",
    "user_channel",
    "ws_manager",
]
