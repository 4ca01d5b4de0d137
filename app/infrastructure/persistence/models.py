# app/infrastructure/persistence/models.py
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text, func
from sqlalchemy.orm import relationship

from .database import Base


class Empresa(Base):
    __tablename__ = "empresas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ruc = Column(String(20), unique=True, nullable=False, index=True)
    nombre_fantasia = Column(String(255), nullable=False)
    razon_social = Column(String(255), nullable=False)

    # configuración SIFEN
    codigo_establecimiento = Column(String(3), nullable=False, default="001")
    codigo_punto_emision = Column(String(3), nullable=False, default="001")
    numero_timbrado = Column(String(8), nullable=False, default="12345678")
    fecha_timbrado = Column(String(10))
    id_csc = Column(String(4), nullable=False, default="0001")
    csc = Column(String(64))
    modo = Column(String(20), nullable=False, default="test")

    # certificado
    certificado_nombre_archivo = Column(String(255))
    certificado_contrasena = Column(Text)
    certificado_activo = Column(Boolean, nullable=False, default=False)
    certificado_vencimiento = Column(DateTime)

    direccion = Column(String(255))
    telefono = Column(String(50))
    email = Column(String(255))
    activo = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())

    facturas = relationship("Factura", back_populates="empresa")


class Factura(Base):
    __tablename__ = "facturas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    empresa_id = Column(Integer, ForeignKey("empresas.id"), nullable=False, index=True)
    ruc_empresa = Column(String(20), nullable=False)
    hash_factura = Column(String(64), unique=True, nullable=False)
    correlativo = Column(String(20), nullable=False)
    estado = Column(String(20), nullable=False, default="queued", index=True)
    datos_factura = Column(JSON, nullable=False, default=dict)
    cliente = Column(JSON, nullable=False, default=dict)
    total = Column(Float, nullable=False, default=0.0)

    cdc = Column(String(44))
    codigo_seguridad = Column(String(9))
    codigo_retorno = Column(String(20))
    mensaje_retorno = Column(Text)
    digest_value = Column(String(255))
    fecha_proceso_sifen = Column(String(50))
    xml_path = Column(String(500))
    kude_path = Column(String(500))

    fecha_envio = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    empresa = relationship("Empresa", back_populates="facturas")


class LogOperacion(Base):
    __tablename__ = "logs_operacion"

    id = Column(Integer, primary_key=True, autoincrement=True)
    factura_id = Column(Integer, ForeignKey("facturas.id"), nullable=False, index=True)
    tipo_operacion = Column(String(30), nullable=False)
    descripcion = Column(Text, nullable=False)
    nivel = Column(String(10), nullable=False, default="success")
    estado_anterior = Column(String(20))
    estado_nuevo = Column(String(20))
    detalle = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, index=True)


class TrabajoCola(Base):
    __tablename__ = "trabajos_cola"

    id = Column(String(50), primary_key=True)  # factura-<id> / kude-<id>
    cola = Column(String(30), nullable=False, index=True)
    tipo = Column(String(30), nullable=False)
    factura_id = Column(Integer, nullable=False, index=True)
    estado = Column(String(20), nullable=False, default="waiting", index=True)
    intentos = Column(Integer, nullable=False, default=0)
    max_intentos = Column(Integer, nullable=False, default=3)
    backoff_tipo = Column(String(20), nullable=False, default="exponential")
    backoff_delay = Column(Float, nullable=False, default=1.0)
    timeout = Column(Integer, nullable=False, default=300)
    prioridad = Column(Integer, nullable=False, default=0)
    payload = Column(JSON, nullable=False, default=dict)
    progreso = Column(Float, nullable=False, default=0.0)
    ultimo_error = Column(Text)
    worker_id = Column(String(255))
    disponible_desde = Column(DateTime)
    heartbeat_at = Column(DateTime)
    created_at = Column(DateTime)
    finalizado_at = Column(DateTime)
