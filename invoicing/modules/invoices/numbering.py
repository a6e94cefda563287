from typing import Collection, Optional
from uuid import UUID
import logging

from sqlalchemy import select, exists
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.modules.invoices.models import Invoice

logger = logging.getLogger(__name__)


class NumberAllocator:
    """
    Asigna el menor entero positivo que ninguna factura del workspace usa.

    La búsqueda es lineal y no es segura ante llamadas concurrentes: la
    restricción única (tenant_id, number) es la que garantiza unicidad y el
    servicio reintenta con el siguiente candidato si el INSERT choca.
    """

    def __init__(self, db: AsyncSession, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    async def is_taken(self, number: int, exclude_invoice_id: Optional[UUID] = None) -> bool:
        """Indica si otra factura del workspace ya usa ``number``"""
        condition = [Invoice.tenant_id == self.tenant_id, Invoice.number == number]
        if exclude_invoice_id is not None:
            condition.append(Invoice.id != exclude_invoice_id)
        result = await self.db.execute(select(exists().where(*condition)))
        return bool(result.scalar())

    async def allocate(self, skip: Collection[int] = ()) -> int:
        """
        Devuelve el menor número libre, saltando los candidatos de ``skip``
        (números que ya chocaron en intentos anteriores).
        """
        number = 0
        taken = True
        while taken:
            number += 1
            taken = number in skip or await self.is_taken(number)
        logger.debug(f"Allocated invoice number {number} for tenant {self.tenant_id}")
        return number
