from invoicing.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, Numeric, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime, timezone
from uuid import uuid4
from invoicing.common.mixins import TenantMixin, TimestampMixin
import enum


class ClientKind(enum.Enum):
    PERSON = "person"
    ORGANIZATION = "organization"


class ProductKind(enum.Enum):
    PRODUCT = "product"
    SERVICE = "service"


class Invoice(Base, TenantMixin, TimestampMixin):
    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Secuencia densa por workspace, sin huecos
    number = Column(Integer, nullable=False)

    # Polymorphic client reference, resolved once at creation
    client_kind = Column(String(30), nullable=False)
    client_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    note = Column(Text, nullable=True)
    valid_till = Column(DateTime(timezone=True), nullable=True)

    # Lista ordenada de factores embebida (title, type, amount, unit)
    factors = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_invoice_tenant_number"),
    )

    @property
    def is_expired(self) -> bool:
        """Vencida cuando la fecha actual alcanza valid_till; sin fecha nunca vence"""
        if self.valid_till is None:
            return False
        valid_till = self.valid_till
        # SQLite drops tzinfo on the way back
        if valid_till.tzinfo is None:
            valid_till = valid_till.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) >= valid_till


class InvoiceItem(Base, TenantMixin, TimestampMixin):
    __tablename__ = "invoice_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    # Polymorphic product reference, immutable after creation
    product_kind = Column(String(30), nullable=False)
    product_id = Column(UUID(as_uuid=True), nullable=False)

    unit_price = Column(Numeric(15, 2), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False, default=1)
    discount_percent = Column(Numeric(5, 2), nullable=True)  # 0 - 100
    note = Column(Text, nullable=True)

    # Multiplicador opcional (alquileres por días); lo asignan los hooks de extensión
    duration = Column(Numeric(10, 2), nullable=True)
