from fastapi import APIRouter, Depends, Query, Response, status
from typing import Annotated, Optional
from uuid import UUID
from datetime import date
import logging

from invoicing.dependencies.dbDependencies import async_db_dependency
from invoicing.dependencies.tenantDependencies import TenantId
from invoicing.modules.invoices.hooks import invoice_hooks
from invoicing.modules.invoices.service import InvoiceService
from invoicing.modules.invoices.schemas import (
    InvoiceIn, InvoiceFilters, InvoiceSort, InvoiceList, InvoiceResponse,
    InvoiceSaveResponse, NextInvoiceNumber, OkResponse
)

logger = logging.getLogger(__name__)


def get_invoice_service(db: async_db_dependency, tenant_id: TenantId) -> InvoiceService:
    return InvoiceService(db, tenant_id, hooks=invoice_hooks)


InvoiceServiceDep = Annotated[InvoiceService, Depends(get_invoice_service)]

# Router principal del módulo de facturas
router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.get("", response_model=InvoiceList)
async def list_invoices(
    service: InvoiceServiceDep,
    number: Optional[int] = Query(None, description="Número exacto de factura"),
    client: Optional[str] = Query(None, description="Código o nombre del cliente"),
    created_from: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD)"),
    created_to: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD)"),
    sort: InvoiceSort = Query(InvoiceSort.CREATED_DESC),
    page: Optional[int] = Query(None, ge=0, description="Página (base 0)"),
    per_page: Optional[int] = Query(None, ge=1, alias="perPage"),
):
    """
    Listar facturas con filtros y paginación
    """
    filters = InvoiceFilters(
        number=number,
        client=client,
        created_from=created_from,
        created_to=created_to,
        sort=sort,
        page=page,
        per_page=per_page
    )
    result = await service.list_invoices(filters)
    return InvoiceList(data=result["invoices"], total=result["total"])


@router.post("", response_model=InvoiceSaveResponse)
async def create_or_update_invoice(
    invoice_data: InvoiceIn,
    response: Response,
    service: InvoiceServiceDep,
):
    """
    Crear una factura nueva o actualizar una existente (si el cuerpo trae ``id``).

    Responde 201 cuando la factura se crea y 200 cuando se actualiza.
    """
    result = await service.create_or_update(invoice_data, invoice_data.id)

    event = "created" if result.was_created else "updated"
    logger.info(f"Invoice {result.invoice.id} {event} in tenant {service.tenant_id}")

    response.status_code = status.HTTP_201_CREATED if result.was_created else status.HTTP_200_OK
    return InvoiceSaveResponse(
        created=result.was_created,
        invoice=service.to_invoice_out(result.invoice, result.items)
    )


@router.get("/new/number", response_model=NextInvoiceNumber)
async def get_next_invoice_number(service: InvoiceServiceDep):
    """
    Obtener el número que se asignaría a una factura nueva
    """
    return NextInvoiceNumber(number=await service.next_number())


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(invoice_id: UUID, service: InvoiceServiceDep):
    """
    Obtener detalles completos de una factura
    """
    return InvoiceResponse(invoice=await service.get_invoice_detail(invoice_id))


@router.delete("/{invoice_id}", response_model=OkResponse)
async def delete_invoice(invoice_id: UUID, service: InvoiceServiceDep):
    """
    Eliminar una factura junto con sus ítems
    """
    await service.delete_invoice(invoice_id)
    return OkResponse()
