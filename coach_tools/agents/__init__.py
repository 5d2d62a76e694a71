from .session import ConversationSession, TurnResult

__all__ = [
    "ConversationSession",
    "TurnResult",
]
