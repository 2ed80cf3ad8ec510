from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, String, Text, func

from ceats.core.database import Base, generate_uuid


class Sucursal(Base):
    __tablename__ = "sucursales"

    sucursal_id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurante_id = Column(String(36), ForeignKey("restaurantes.restaurante_id"), index=True, nullable=False)

    nombre_sucursal = Column(String(200), nullable=False)
    direccion = Column(Text, nullable=False)
    telefono_contacto = Column(String(30), nullable=False)
    email_contacto_sucursal = Column(String(255), nullable=True)
    ciudad = Column(String(120), nullable=True)
    estado = Column(String(120), nullable=True)  # estado/provincia, no estado del pedido
    codigo_postal = Column(String(10), nullable=True)
    latitud = Column(Float, nullable=True)
    longitud = Column(Float, nullable=True)

    is_verified = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    # nulos una vez verificada
    verification_code = Column(String(6), nullable=True)
    verification_expires = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
