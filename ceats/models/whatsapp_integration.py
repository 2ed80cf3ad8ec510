from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint, func

from ceats.core.database import Base, generate_uuid


class WhatsAppIntegration(Base):
    __tablename__ = "whatsapp_integrations"
    __table_args__ = (UniqueConstraint("restaurante_id", "provider", name="uq_whatsapp_integration_provider"),)

    integration_id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurante_id = Column(String(36), ForeignKey("restaurantes.restaurante_id"), index=True, nullable=False)
    sucursal_id = Column(String(36), ForeignKey("sucursales.sucursal_id"), nullable=True)
    provider = Column(String(40), nullable=False)  # baileys | whatsapp_business_api

    waba_id = Column(String(64), nullable=True)
    phone_number_id = Column(String(64), index=True, nullable=True)
    business_id = Column(String(64), nullable=True)
    # AES-GCM, ver ceats.services.crypto
    access_token_encrypted = Column(Text, nullable=True)
    system_user_token_encrypted = Column(Text, nullable=True)

    webhook_url = Column(String(500), nullable=True)
    webhook_verify_token = Column(String(128), index=True, nullable=True)
    webhook_secret = Column(String(128), nullable=True)

    connection_status = Column(String(20), nullable=False, default="disconnected")
    error_message = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_connection_attempt = Column(DateTime(timezone=True), nullable=True)
    last_webhook_received = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
