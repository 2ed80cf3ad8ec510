from sqlalchemy import Column, DateTime, ForeignKey, String, Text, func

from ceats.core.database import Base, generate_uuid


class WhatsAppMessage(Base):
    __tablename__ = "whatsapp_messages"

    message_id = Column(String(36), primary_key=True, default=generate_uuid)
    integration_id = Column(
        String(36), ForeignKey("whatsapp_integrations.integration_id", ondelete="CASCADE"), index=True, nullable=False
    )
    whatsapp_message_id = Column(String(128), unique=True, nullable=False)
    from_number = Column(String(40), nullable=True)
    to_number = Column(String(40), nullable=True)
    message_type = Column(String(30), nullable=False)
    message_data = Column(Text, nullable=True)
    order_id = Column(String(100), nullable=True)
    order_token = Column(String(255), nullable=True)
    processing_status = Column(String(20), nullable=False, default="processing")
    error = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
