"""
Módulo de Facturación (Invoices)

- Numeración secuencial densa por workspace (sin huecos)
- Subtotal y total calculados a partir de ítems y factores de ajuste
- Sincronización de ítems contra la lista enviada en cada guardado
- Hooks de extensión antes y después de guardar facturas e ítems

Tablas principales:
- invoices: Facturas
- invoice_items: Ítems de factura
"""

from .models import Invoice, InvoiceItem
from .schemas import InvoiceIn, InvoiceItemIn, InvoiceOut, Factor
from .hooks import HookRegistry, invoice_hooks
from .service import InvoiceService, InvoiceSaveResult
from .router import router

__all__ = [
    "Invoice", "InvoiceItem",
    "InvoiceIn", "InvoiceItemIn", "InvoiceOut", "Factor",
    "HookRegistry", "invoice_hooks",
    "InvoiceService", "InvoiceSaveResult",
    "router"
]
