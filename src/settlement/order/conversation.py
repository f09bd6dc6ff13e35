"""Conversation — the buyer/seller message thread seeded for every order."""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, HasMany, Identifier, String, Text

from settlement.domain import settlement


class MessageType(Enum):
    TEXT = "TEXT"
    SYSTEM = "SYSTEM"


class ParticipantRole(Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"


@settlement.entity(part_of="Conversation")
class Participant:
    user_id: Identifier(required=True)
    role: String(max_length=20, choices=ParticipantRole, required=True)


@settlement.entity(part_of="Conversation")
class ConversationMessage:
    sender_id: Identifier()
    message_type: String(max_length=20, choices=MessageType, default=MessageType.TEXT.value)
    text: Text(required=True)
    sent_at: DateTime(default=lambda: datetime.now(UTC))


@settlement.aggregate
class Conversation:
    conversation_id: Identifier(identifier=True, required=True)
    order_id: Identifier(required=True)
    title: String(max_length=255)
    participants = HasMany(Participant)
    messages = HasMany(ConversationMessage)

    @staticmethod
    def id_for_order(order_id) -> str:
        return f"order_{order_id}"

    @classmethod
    def open_for_order(cls, order_id, title, buyer_id, seller_ids):
        conversation = cls(
            conversation_id=cls.id_for_order(order_id),
            order_id=order_id,
            title=title,
        )
        conversation.add_participants(Participant(user_id=buyer_id, role=ParticipantRole.BUYER.value))
        for seller_id in seller_ids:
            if str(seller_id) != str(buyer_id):
                conversation.add_participants(Participant(user_id=seller_id, role=ParticipantRole.SELLER.value))
        return conversation

    def post_system_message(self, text: str, sender_id=None) -> None:
        self.add_messages(
            ConversationMessage(
                sender_id=sender_id,
                message_type=MessageType.SYSTEM.value,
                text=text,
            )
        )
