# Chat Service for the CollabPay pipeline
# Only the system-message surface the pipeline needs

from datetime import datetime
from sqlalchemy.orm import Session

from database.marketplace_models import ChatRoom, ChatMessage


class ChatService:
    """Posts system messages into the chat rooms attached to a campaign."""

    def __init__(self, db: Session):
        self.db = db

    def post_system_message(self, campaign_id: str, text: str) -> int:
        """
        Append a system message to every chat room of the campaign.

        Returns the number of rooms posted to. The caller owns the commit.
        """
        rooms = self.db.query(ChatRoom).filter(ChatRoom.campaign_id == campaign_id).all()
        now = datetime.utcnow()
        for room in rooms:
            self.db.add(ChatMessage(room_id=room.id, sender_id=None, message=text, is_system=True))
            room.last_message_at = now
        self.db.flush()
        return len(rooms)


def get_chat_service(db: Session) -> ChatService:
    return ChatService(db)
