from sqlalchemy import Column, DateTime, String, func

from ceats.core.database import Base


class EmbeddedSignupState(Base):
    __tablename__ = "whatsapp_signup_states"

    state = Column(String(64), primary_key=True)
    restaurante_id = Column(String(36), index=True, nullable=False)
    sucursal_id = Column(String(36), nullable=True)
    expires_at = Column(DateTime(timezone=True), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
