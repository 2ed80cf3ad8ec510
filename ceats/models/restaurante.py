from sqlalchemy import Boolean, Column, DateTime, String, Text, func

from ceats.core.database import Base, generate_uuid


class Restaurante(Base):
    __tablename__ = "restaurantes"

    restaurante_id = Column(String(36), primary_key=True, default=generate_uuid)
    nombre = Column(String(200), nullable=False)

    # Contacto legal
    nombre_contacto_legal = Column(String(120), nullable=False)
    apellidos_contacto_legal = Column(String(120), nullable=True)
    email_contacto_legal = Column(String(255), unique=True, index=True, nullable=False)
    telefono_contacto_legal = Column(String(30), nullable=False)
    direccion_fiscal = Column(Text, nullable=False)
    rfc = Column(String(20), nullable=True)

    terminos_aceptados_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
