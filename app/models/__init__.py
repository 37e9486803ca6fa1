from app.models.user import User
from app.models.business import Business
from app.models.connection_request import ConnectionRequest
from app.models.chat_room import ChatRoom
from app.models.chat_message import ChatMessage
from app.models.notification import Notification

__all__ = [
    "User",
    "Business",
    "ConnectionRequest",
    "ChatRoom",
    "ChatMessage",
    "Notification",
]
