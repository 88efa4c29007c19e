"""
Per-room chat history.
"""

import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

CHAT_TYPES = ('text', 'emoji')


@dataclass
class ChatMessage:
    id: str
    sender_id: str
    sender_name: str
    content: str
    chat_type: str
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'senderId': self.sender_id,
            'senderName': self.sender_name,
            'content': self.content,
            'type': self.chat_type,
            'timestamp': self.timestamp,
        }


class ChatLog:
    """Bounded chat history; the oldest messages fall off first."""

    def __init__(self, limit: int = 50, max_length: int = 200):
        self.max_length = max_length
        self.messages: deque = deque(maxlen=limit)

    def add(self, sender_id: str, sender_name: str, content: Any,
            chat_type: str = 'text') -> Optional[ChatMessage]:
        """
        Append a message.

        Content is trimmed and capped at ``max_length``. Empty content is
        ignored and returns None.
        """
        if not isinstance(content, str):
            return None
        text = content.strip()[:self.max_length]
        if not text:
            return None
        if chat_type not in CHAT_TYPES:
            chat_type = 'text'

        message = ChatMessage(
            id=uuid.uuid4().hex[:12],
            sender_id=sender_id,
            sender_name=sender_name,
            content=text,
            chat_type=chat_type,
            timestamp=time.time(),
        )
        self.messages.append(message)
        return message

    def history(self) -> List[Dict[str, Any]]:
        return [message.to_dict() for message in self.messages]

    def __len__(self) -> int:
        return len(self.messages)
