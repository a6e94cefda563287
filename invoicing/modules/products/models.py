from invoicing.database.database import Base
from sqlalchemy import Column, String, Numeric, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from invoicing.common.mixins import TenantMixin, TimestampMixin


class Product(Base, TenantMixin, TimestampMixin):
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    sku = Column(String(50), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False, default=0)  # Precio de venta sugerido

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
    )


class Service(Base, TenantMixin, TimestampMixin):
    """Servicios facturables (alquileres, mano de obra, etc.)"""
    __tablename__ = "services"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_service_tenant_code"),
    )
