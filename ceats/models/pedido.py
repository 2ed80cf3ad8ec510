from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String, Text, func

from ceats.core.database import Base, generate_uuid


class Pedido(Base):
    __tablename__ = "pedidos"

    pedido_id = Column(String(36), primary_key=True, default=generate_uuid)
    codigo = Column(String(100), unique=True, index=True, nullable=False)
    sucursal_id = Column(String(36), ForeignKey("sucursales.sucursal_id"), index=True, nullable=False)

    estado = Column(String(50), nullable=False, default="Pendiente")
    deliver_or_rest = Column(String(20), nullable=False, default="recoger")  # domicilio | recoger

    # Cliente
    nombre = Column(String(200), nullable=False)
    celular = Column(String(30), nullable=False)
    entregar_a = Column(String(200), nullable=True)
    domicilio = Column(Text, nullable=True)

    # Contenido
    pedido = Column(Text, nullable=False)  # JSON de líneas
    instrucciones = Column(Text, nullable=True)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="MXN")
    pago = Column(String(50), nullable=True)

    fecha = Column(String(20), nullable=False)
    hora = Column(String(20), nullable=False)
    tiempo = Column(String(50), nullable=True)

    origen = Column(String(20), nullable=False, default="manual")  # manual | whatsapp
    motivo_cancelacion = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


Index("ix_pedidos_sucursal_created", Pedido.sucursal_id, Pedido.created_at)
