"""
Resolución de referencias polimórficas (cliente y producto).

Una referencia es ``{kind, identifier}``; el ``kind`` elige la tabla y el
``identifier`` se interpreta como UUID, como llave natural de esa tabla o
como objeto embebido con ``id``.
"""
from dataclasses import dataclass
from typing import Any, Callable, Collection, Dict
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.exceptions import NotFoundError, ValidationError
from invoicing.modules.contacts.models import Person, Organization
from invoicing.modules.products.models import Product, Service
from invoicing.modules.invoices.models import ClientKind, ProductKind
from invoicing.modules.invoices.schemas import EntityReference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KindSpec:
    model: Any
    natural_key: str
    coerce: Callable[[Any], Any]


ENTITY_KINDS: Dict[str, KindSpec] = {
    ClientKind.PERSON.value: KindSpec(Person, "code", int),
    ClientKind.ORGANIZATION.value: KindSpec(Organization, "code", int),
    ProductKind.PRODUCT.value: KindSpec(Product, "sku", str),
    ProductKind.SERVICE.value: KindSpec(Service, "code", str),
}

CLIENT_KINDS = frozenset(kind.value for kind in ClientKind)
PRODUCT_KINDS = frozenset(kind.value for kind in ProductKind)


class ReferenceResolver:
    def __init__(self, db: AsyncSession, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    def _lookup(self, spec: KindSpec, identifier: Any):
        """Devuelve (columna, valor) con el que buscar la entidad"""
        if isinstance(identifier, dict):
            if identifier.get("id") is not None:
                return self._lookup(spec, identifier["id"])
            if identifier.get(spec.natural_key) is not None:
                return self._natural_key(spec, identifier[spec.natural_key])
            raise ValidationError(
                f"Embedded reference needs 'id' or '{spec.natural_key}'"
            )
        if isinstance(identifier, UUID):
            return spec.model.id, identifier
        if isinstance(identifier, str):
            try:
                return spec.model.id, UUID(identifier)
            except ValueError:
                pass
        return self._natural_key(spec, identifier)

    @staticmethod
    def _natural_key(spec: KindSpec, value: Any):
        if isinstance(value, bool):
            raise ValidationError(f"Malformed identifier: {value!r}")
        try:
            return getattr(spec.model, spec.natural_key), spec.coerce(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Malformed {spec.model.__name__} {spec.natural_key}: {value!r}"
            )

    async def resolve(self, reference: EntityReference, allowed_kinds: Collection[str]):
        if reference is None:
            raise ValidationError("Missing required reference")

        if reference.kind not in allowed_kinds or reference.kind not in ENTITY_KINDS:
            raise ValidationError(
                f"Unsupported reference kind '{reference.kind}'",
                detail={"allowed": sorted(allowed_kinds)}
            )

        spec = ENTITY_KINDS[reference.kind]
        column, value = self._lookup(spec, reference.identifier)

        result = await self.db.execute(
            select(spec.model).where(
                spec.model.tenant_id == self.tenant_id,
                column == value
            )
        )
        entity = result.scalar_one_or_none()
        if entity is None:
            raise NotFoundError(
                f"{spec.model.__name__} not found",
                detail={"kind": reference.kind, "identifier": str(value)}
            )
        logger.debug(f"Resolved {reference.kind} reference {value} -> {entity.id}")
        return entity

    async def resolve_client(self, reference: EntityReference):
        return await self.resolve(reference, CLIENT_KINDS)

    async def resolve_product(self, reference: EntityReference):
        return await self.resolve(reference, PRODUCT_KINDS)
