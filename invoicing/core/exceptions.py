"""
Errores de dominio del servicio de facturación.

Los servicios solo lanzan estas clases; la capa HTTP (``invoicing.main``)
las traduce a códigos de respuesta.
"""
from typing import Any, Optional


class InvoicingError(Exception):
    """Error base del dominio de facturas"""

    kind = "error"

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(InvoicingError):
    """La factura, ítem, cliente o producto referenciado no existe"""

    kind = "not_found"


class ValidationError(InvoicingError):
    """Referencia requerida ausente, descuento fuera de rango o factor mal formado"""

    kind = "validation_error"


class ConflictError(InvoicingError):
    """Colisión de número de factura que agota los reintentos"""

    kind = "conflict"


class DependencyError(InvoicingError):
    """Fallo de un hook de extensión o de la capa de persistencia"""

    kind = "dependency_error"
