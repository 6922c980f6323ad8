"""
Conversation messages.

A conversation is an ordered list of messages, oldest first, replayed
verbatim to the model gateway as context.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List


class Role(Enum):
    """Author of a conversation message."""
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class Message:
    """A single conversation turn."""
    role: Role
    content: str

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def model(cls, content: str) -> "Message":
        return cls(role=Role.MODEL, content=content)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Build a message from its wire form ``{"role": ..., "content": ...}``.

        Raises:
            ValueError: If the role is unknown or the content is not a string
        """
        if not isinstance(data, dict):
            raise ValueError("message must be an object")
        try:
            role = Role(data.get("role"))
        except ValueError:
            valid_roles = [r.value for r in Role]
            raise ValueError(f"message role must be one of: {valid_roles}")
        content = data.get("content")
        if not isinstance(content, str):
            raise ValueError("message content must be a string")
        return cls(role=role, content=content)

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


def parse_conversation(raw: Iterable[Dict[str, Any]]) -> List[Message]:
    """Parse a list of wire-form messages, preserving order."""
    return [Message.from_dict(item) for item in raw]


def validate_conversation(conversation: List[Message]) -> None:
    """Check that a conversation can be sent to the provider.

    Raises:
        ValueError: If the conversation is empty or does not end with a user message
    """
    if not conversation:
        raise ValueError("conversation is required and cannot be empty")
    if conversation[-1].role is not Role.USER:
        raise ValueError("conversation must end with a user message")
