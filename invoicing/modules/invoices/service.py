from sqlalchemy import select, delete, func, and_, or_, asc, desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Set
from uuid import UUID
from datetime import datetime, time, timedelta, timezone
import asyncio
import logging

from invoicing.core.config import settings
from invoicing.core.exceptions import (
    InvoicingError, NotFoundError, ValidationError, ConflictError, DependencyError
)
from invoicing.modules.contacts.models import Person, Organization
from invoicing.modules.invoices.models import Invoice, InvoiceItem, ClientKind
from invoicing.modules.invoices.schemas import (
    InvoiceIn, InvoiceItemIn, InvoiceOut, InvoiceItemOut, InvoiceFilters, InvoiceSort,
    Factor, ReferenceOut
)
from invoicing.modules.invoices.factors import FactorEngine
from invoicing.modules.invoices.numbering import NumberAllocator
from invoicing.modules.invoices.reconciler import ItemReconciler, ReconciliationPlan
from invoicing.modules.invoices.references import ReferenceResolver
from invoicing.modules.invoices.hooks import (
    HookRegistry, invoice_hooks,
    InvoiceHookContext, ItemHookContext, InvoiceDeleteContext,
    INVOICE_PRE_SAVE, INVOICE_POST_SAVE, ITEM_PRE_SAVE, ITEM_POST_SAVE, INVOICE_PRE_DELETE
)

logger = logging.getLogger(__name__)

SCALAR_FIELDS = ("note", "valid_till")

SORT_COLUMNS = {
    InvoiceSort.CREATED_ASC: asc(Invoice.created_at),
    InvoiceSort.CREATED_DESC: desc(Invoice.created_at),
    InvoiceSort.NUMBER_ASC: asc(Invoice.number),
    InvoiceSort.NUMBER_DESC: desc(Invoice.number),
}


@dataclass
class InvoiceSaveResult:
    invoice: Invoice
    items: List[InvoiceItem] = field(default_factory=list)
    was_created: bool = False


class NumberCollision(Exception):
    """Otro guardado concurrente tomó el número asignado"""

    def __init__(self, number: int):
        super().__init__(f"Invoice number {number} already taken")
        self.number = number


class InvoiceService:
    """
    Crea, actualiza, consulta y elimina facturas de un workspace.

    Cada ``create_or_update`` y ``delete_invoice`` es una única transacción:
    número, campos, ítems y hooks se confirman juntos o no se confirma nada.
    Dos ediciones concurrentes de la misma factura no se detectan; gana la
    última en confirmar.
    """

    def __init__(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        hooks: Optional[HookRegistry] = None,
        resolver: Optional[ReferenceResolver] = None,
        allocator: Optional[NumberAllocator] = None,
        reconciler: Optional[ItemReconciler] = None,
        engine: Optional[FactorEngine] = None
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.hooks = hooks if hooks is not None else invoice_hooks
        self.resolver = resolver or ReferenceResolver(db, tenant_id)
        self.allocator = allocator or NumberAllocator(db, tenant_id)
        self.reconciler = reconciler or ItemReconciler()
        self.engine = engine or FactorEngine()

    # ===== LECTURA =====

    async def get_invoice(self, invoice_id: UUID) -> Invoice:
        result = await self.db.execute(
            select(Invoice).where(
                Invoice.id == invoice_id,
                Invoice.tenant_id == self.tenant_id
            )
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Invoice not found", detail={"invoice_id": str(invoice_id)})
        return invoice

    async def get_items(self, invoice_id: UUID) -> List[InvoiceItem]:
        result = await self.db.execute(
            select(InvoiceItem)
            .where(
                InvoiceItem.invoice_id == invoice_id,
                InvoiceItem.tenant_id == self.tenant_id
            )
            .order_by(InvoiceItem.created_at, InvoiceItem.id)
        )
        return list(result.scalars().all())

    async def get_invoice_detail(self, invoice_id: UUID) -> InvoiceOut:
        invoice = await self.get_invoice(invoice_id)
        items = await self.get_items(invoice.id)
        return self.to_invoice_out(invoice, items)

    async def next_number(self) -> int:
        """Número que se asignaría ahora; no queda reservado"""
        return await self.allocator.allocate()

    def to_invoice_out(self, invoice: Invoice, items: List[InvoiceItem]) -> InvoiceOut:
        factors = [Factor.model_validate(f) for f in (invoice.factors or [])]
        return InvoiceOut(
            id=invoice.id,
            number=invoice.number,
            client=ReferenceOut(kind=invoice.client_kind, id=invoice.client_id),
            note=invoice.note,
            valid_till=invoice.valid_till,
            factors=factors,
            items=[
                InvoiceItemOut(
                    id=item.id,
                    product=ReferenceOut(kind=item.product_kind, id=item.product_id),
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    discount_percent=item.discount_percent,
                    duration=item.duration,
                    note=item.note,
                    line_total=self.engine.line_total(item)
                )
                for item in items
            ],
            subtotal=self.engine.quantize(self.engine.subtotal(items)),
            total=self.engine.total(items, factors),
            is_expired=invoice.is_expired,
            created_at=invoice.created_at,
            updated_at=invoice.updated_at
        )

    async def list_invoices(self, filters: InvoiceFilters) -> dict:
        """Listado con filtros; el filtrado y el orden los resuelve la base de datos"""
        conditions = [Invoice.tenant_id == self.tenant_id]

        if filters.number is not None:
            conditions.append(Invoice.number == filters.number)

        if filters.created_from:
            conditions.append(
                Invoice.created_at >= datetime.combine(filters.created_from, time.min, tzinfo=timezone.utc)
            )

        if filters.created_to:
            end = filters.created_to + timedelta(days=1)
            conditions.append(
                Invoice.created_at < datetime.combine(end, time.min, tzinfo=timezone.utc)
            )

        if filters.client:
            conditions.append(await self._client_condition(filters.client.strip()))

        count_result = await self.db.execute(
            select(func.count(Invoice.id)).where(and_(*conditions))
        )
        total = count_result.scalar_one()

        query = (
            select(Invoice)
            .where(and_(*conditions))
            .order_by(SORT_COLUMNS[filters.sort], Invoice.id)
        )

        if filters.page is not None:
            per_page = min(filters.per_page or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
            query = query.offset(filters.page * per_page).limit(per_page)

        invoices = list((await self.db.execute(query)).scalars().all())
        items_by_invoice = await self._items_for(invoices)

        return {
            "invoices": [
                self.to_invoice_out(invoice, items_by_invoice.get(invoice.id, []))
                for invoice in invoices
            ],
            "total": total
        }

    async def _client_condition(self, text: str):
        """Código numérico exacto o coincidencia parcial de nombre"""
        if text.isdigit():
            person_filter = Person.code == int(text)
            organization_filter = Organization.code == int(text)
        else:
            pattern = f"%{text}%"
            person_filter = or_(Person.first_name.ilike(pattern), Person.last_name.ilike(pattern))
            organization_filter = Organization.name.ilike(pattern)

        persons = await self.db.execute(
            select(Person.id).where(Person.tenant_id == self.tenant_id, person_filter)
        )
        organizations = await self.db.execute(
            select(Organization.id).where(Organization.tenant_id == self.tenant_id, organization_filter)
        )

        return or_(
            and_(
                Invoice.client_kind == ClientKind.PERSON.value,
                Invoice.client_id.in_(list(persons.scalars().all()))
            ),
            and_(
                Invoice.client_kind == ClientKind.ORGANIZATION.value,
                Invoice.client_id.in_(list(organizations.scalars().all()))
            )
        )

    async def _items_for(self, invoices: List[Invoice]) -> Dict[UUID, List[InvoiceItem]]:
        if not invoices:
            return {}
        result = await self.db.execute(
            select(InvoiceItem)
            .where(
                InvoiceItem.tenant_id == self.tenant_id,
                InvoiceItem.invoice_id.in_([invoice.id for invoice in invoices])
            )
            .order_by(InvoiceItem.created_at, InvoiceItem.id)
        )
        grouped: Dict[UUID, List[InvoiceItem]] = {}
        for item in result.scalars().all():
            grouped.setdefault(item.invoice_id, []).append(item)
        return grouped

    # ===== ESCRITURA =====

    async def create_or_update(self, data: InvoiceIn, invoice_id: Optional[UUID] = None) -> InvoiceSaveResult:
        """
        Crear una factura nueva o actualizar una existente.

        Si el número asignado automáticamente choca con otro guardado
        concurrente, se revierte todo y se reintenta con el siguiente
        candidato hasta ``NUMBER_ALLOCATION_MAX_ATTEMPTS`` veces.
        """
        invoice_id = invoice_id or data.id
        max_attempts = settings.NUMBER_ALLOCATION_MAX_ATTEMPTS
        tried: Set[int] = set()

        for attempt in range(1, max_attempts + 1):
            try:
                result = await self._save(data, invoice_id, tried)
                await self.db.commit()
                await self.db.refresh(result.invoice)
            except NumberCollision as collision:
                await self.db.rollback()
                tried.add(collision.number)
                logger.warning(
                    f"Invoice number {collision.number} taken concurrently "
                    f"(attempt {attempt}/{max_attempts}, tenant {self.tenant_id})"
                )
                if attempt < max_attempts:
                    await asyncio.sleep(settings.NUMBER_ALLOCATION_BACKOFF_SECONDS * attempt)
                continue
            except InvoicingError:
                await self.db.rollback()
                raise
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Error saving invoice: {e}", exc_info=True)
                raise DependencyError(f"Error saving invoice: {e}") from e

            event = "created" if result.was_created else "updated"
            logger.info(f"Invoice {result.invoice.number} {event} ({result.invoice.id})")
            return result

        raise ConflictError(
            "Could not allocate a unique invoice number",
            detail={"attempts": max_attempts, "tried": sorted(tried)}
        )

    async def _save(self, data: InvoiceIn, invoice_id: Optional[UUID], tried: Set[int]) -> InvoiceSaveResult:
        if invoice_id:
            invoice = await self.get_invoice(invoice_id)
            created = False
        else:
            invoice = Invoice(tenant_id=self.tenant_id, factors=[])
            created = True

        # assign number
        allocated = False
        if data.number is not None:
            if data.number != invoice.number and await self.allocator.is_taken(
                data.number, exclude_invoice_id=invoice.id
            ):
                raise ConflictError(
                    f"Invoice number {data.number} is already in use",
                    detail={"number": data.number}
                )
            invoice.number = data.number
        elif created:
            invoice.number = await self.allocator.allocate(skip=tried)
            allocated = True

        # assign client only once
        if created:
            if data.client is None:
                raise ValidationError("Client is required for new invoices")
            client = await self.resolver.resolve_client(data.client)
            invoice.client_kind = data.client.kind
            invoice.client_id = client.id

        for key in SCALAR_FIELDS:
            if key in data.model_fields_set:
                setattr(invoice, key, getattr(data, key))

        if data.factors is not None:
            invoice.factors = [factor.model_dump(mode="json") for factor in data.factors]

        await self.hooks.invoke(
            INVOICE_PRE_SAVE,
            InvoiceHookContext(invoice=invoice, data=data, session=self.db, tenant_id=self.tenant_id, created=created)
        )

        if created:
            self.db.add(invoice)
        try:
            await self.db.flush()
        except IntegrityError as e:
            if allocated:
                raise NumberCollision(invoice.number) from e
            raise ConflictError(
                f"Invoice number {invoice.number} is already in use",
                detail={"number": invoice.number}
            ) from e

        items = await self._sync_items(invoice, data.items, created)

        await self.hooks.invoke(
            INVOICE_POST_SAVE,
            InvoiceHookContext(invoice=invoice, data=data, session=self.db, tenant_id=self.tenant_id, created=created)
        )

        return InvoiceSaveResult(invoice=invoice, items=items, was_created=created)

    async def _sync_items(self, invoice: Invoice, desired: List[InvoiceItemIn], created: bool) -> List[InvoiceItem]:
        existing = [] if created else await self.get_items(invoice.id)
        plan: ReconciliationPlan = self.reconciler.reconcile(existing, desired)

        # Resolve every product before the first write
        products = [await self.resolver.resolve_product(data.product) for data in plan.to_create]

        for item in plan.to_delete:
            await self.db.delete(item)

        for update in plan.to_update:
            for key, value in update.changes.items():
                setattr(update.item, key, value)
            await self._save_item(update.item, update.data, update.item.id)

        new_items = []
        for data, product in zip(plan.to_create, products):
            item = InvoiceItem(
                tenant_id=self.tenant_id,
                invoice_id=invoice.id,
                product_kind=data.product.kind,
                product_id=product.id,
                unit_price=data.unit_price if data.unit_price is not None else product.unit_price,
                quantity=data.quantity if data.quantity is not None else Decimal("1"),
                discount_percent=data.discount_percent,
                note=data.note
            )
            await self._save_item(item, data, None)
            new_items.append(item)

        await self.db.flush()
        logger.info(f"Invoice {invoice.number} items synced: {plan.summary()}")

        # Same order as the caller's list
        existing_by_id = {item.id: item for item in existing}
        created_iter = iter(new_items)
        return [
            existing_by_id[data.id] if data.id is not None else next(created_iter)
            for data in desired
        ]

    async def _save_item(self, item: InvoiceItem, data: InvoiceItemIn, item_id: Optional[UUID]) -> None:
        await self.hooks.invoke(
            ITEM_PRE_SAVE,
            ItemHookContext(item=item, data=data, item_id=item_id, session=self.db, tenant_id=self.tenant_id)
        )
        if item_id is None:
            self.db.add(item)
        await self.db.flush()
        await self.hooks.invoke(
            ITEM_POST_SAVE,
            ItemHookContext(item=item, data=data, item_id=item_id, session=self.db, tenant_id=self.tenant_id)
        )

    async def delete_invoice(self, invoice_id: UUID) -> None:
        """Eliminar la factura y sus ítems"""
        try:
            invoice = await self.get_invoice(invoice_id)

            await self.hooks.invoke(
                INVOICE_PRE_DELETE,
                InvoiceDeleteContext(invoice_id=invoice.id, session=self.db, tenant_id=self.tenant_id)
            )

            await self.db.execute(
                delete(InvoiceItem).where(
                    InvoiceItem.invoice_id == invoice.id,
                    InvoiceItem.tenant_id == self.tenant_id
                )
            )
            await self.db.delete(invoice)
            await self.db.commit()

            logger.info(f"Invoice {invoice.number} deleted ({invoice.id})")

        except InvoicingError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error deleting invoice {invoice_id}: {e}", exc_info=True)
            raise DependencyError(f"Error deleting invoice: {e}") from e
