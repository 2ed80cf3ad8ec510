from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, func

from ceats.core.database import Base, generate_uuid


class Usuario(Base):
    __tablename__ = "usuarios"

    usuario_id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurante_id = Column(String(36), ForeignKey("restaurantes.restaurante_id"), index=True, nullable=False)
    # null para admins; obligatorio para empleado/gerente
    sucursal_id = Column(String(36), ForeignKey("sucursales.sucursal_id"), index=True, nullable=True)

    nombre = Column(String(120), nullable=False)
    apellidos = Column(String(120), nullable=False, default="")
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)  # admin | empleado | gerente
    fecha_nacimiento = Column(Date, nullable=True)

    is_email_verified = Column(Boolean, nullable=False, default=False)
    verification_code = Column(String(6), nullable=True)
    verification_expires = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    is_first_login = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
