from invoicing.database.database import Base
from sqlalchemy import Column, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from invoicing.common.mixins import TenantMixin, TimestampMixin


class Person(Base, TenantMixin, TimestampMixin):
    """Cliente persona natural"""
    __tablename__ = "persons"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(Integer, nullable=False)  # Código corto que usan los operadores
    first_name = Column(String(100), nullable=False, index=True)
    last_name = Column(String(100), nullable=True, index=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_person_tenant_code"),
    )

    @property
    def full_name(self):
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class Organization(Base, TenantMixin, TimestampMixin):
    """Cliente persona jurídica"""
    __tablename__ = "organizations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(Integer, nullable=False)
    name = Column(String(200), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_organization_tenant_code"),
    )
