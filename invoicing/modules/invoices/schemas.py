from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List, Dict, Any, Union
from uuid import UUID
from datetime import date, datetime
from enum import Enum


class FactorType(str, Enum):
    ENHANCER = "enhancer"
    REDUCER = "reducer"


class FactorUnit(str, Enum):
    PERCENT = "percent"
    PRICE = "price"


class InvoiceSort(str, Enum):
    CREATED_ASC = "created_at"
    CREATED_DESC = "-created_at"
    NUMBER_ASC = "number"
    NUMBER_DESC = "-number"


# Factor Schemas
class Factor(BaseModel):
    """Ajuste de precio (recargo o descuento) embebido en la factura"""
    title: Optional[str] = Field(None, max_length=200)
    type: FactorType
    amount: Decimal = Field(..., ge=0, description="Monto no negativo")
    unit: FactorUnit


# Reference Schemas
class EntityReference(BaseModel):
    """
    Referencia polimórfica {kind, identifier}.

    ``identifier`` puede llegar como UUID, como llave natural (código o SKU)
    o como objeto embebido con ``id``. También se acepta el valor suelto,
    en cuyo caso se usa el ``kind`` por defecto del campo.
    """
    kind: str
    identifier: Union[UUID, int, str, Dict[str, Any]]

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_identifier(cls, value):
        kind_field = cls.model_fields["kind"]
        default_kind = None if kind_field.is_required() else kind_field.default
        if isinstance(value, dict):
            if "identifier" in value:
                return value
            # Embedded object, e.g. a full client record
            return {"kind": value.get("kind", default_kind), "identifier": value}
        return {"kind": default_kind, "identifier": value}


class ClientReference(EntityReference):
    kind: str = "person"


class ProductReference(EntityReference):
    kind: str = "product"


class ReferenceOut(BaseModel):
    kind: str
    id: UUID


# Invoice Item Schemas
class InvoiceItemIn(BaseModel):
    """
    Ítem deseado. Con ``id`` actualiza un ítem existente de la factura;
    sin ``id`` crea uno nuevo y requiere ``product``.
    """
    id: Optional[UUID] = None
    product: Optional[ProductReference] = None
    unit_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Precio unitario; por defecto el del producto")
    quantity: Optional[Decimal] = Field(None, gt=0, decimal_places=3, description="Cantidad debe ser mayor a 0")
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2, description="Descuento entre 0 y 100")
    note: Optional[str] = None


class InvoiceItemOut(BaseModel):
    id: UUID
    product: ReferenceOut
    unit_price: Decimal
    quantity: Decimal
    discount_percent: Optional[Decimal] = None
    duration: Optional[Decimal] = None
    note: Optional[str] = None
    line_total: Decimal


# Invoice Schemas
class InvoiceIn(BaseModel):
    """
    Datos para crear o actualizar una factura.

    Solo los campos enviados se copian sobre la factura; ``factors`` reemplaza
    la lista completa e ``items`` es la lista final deseada de ítems.
    """
    id: Optional[UUID] = None
    number: Optional[int] = Field(None, gt=0)
    client: Optional[ClientReference] = None
    note: Optional[str] = None
    valid_till: Optional[datetime] = None
    factors: Optional[List[Factor]] = None
    items: List[InvoiceItemIn] = Field(default_factory=list)

    @field_validator('items')
    @classmethod
    def validate_unique_item_ids(cls, v):
        ids = [item.id for item in v if item.id is not None]
        if len(ids) != len(set(ids)):
            raise ValueError('Un ítem no puede aparecer dos veces en la misma factura')
        return v


class InvoiceOut(BaseModel):
    id: UUID
    number: int
    client: ReferenceOut
    note: Optional[str] = None
    valid_till: Optional[datetime] = None
    factors: List[Factor] = Field(default_factory=list)
    items: List[InvoiceItemOut] = Field(default_factory=list)
    subtotal: Decimal
    total: Decimal
    is_expired: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InvoiceFilters(BaseModel):
    number: Optional[int] = None
    client: Optional[str] = Field(None, description="Código numérico o texto del nombre del cliente")
    created_from: Optional[date] = None
    created_to: Optional[date] = None
    sort: InvoiceSort = InvoiceSort.CREATED_DESC
    page: Optional[int] = Field(None, ge=0, description="Página (base 0); sin página se devuelve todo")
    per_page: Optional[int] = Field(None, ge=1)

    @model_validator(mode='after')
    def validate_date_range(self):
        if self.created_from and self.created_to and self.created_to < self.created_from:
            raise ValueError('created_to no puede ser anterior a created_from')
        return self


# Response Schemas
class InvoiceResponse(BaseModel):
    ok: bool = True
    invoice: InvoiceOut


class InvoiceSaveResponse(InvoiceResponse):
    created: bool


class InvoiceList(BaseModel):
    ok: bool = True
    data: List[InvoiceOut]
    total: int


class NextInvoiceNumber(BaseModel):
    ok: bool = True
    number: int


class OkResponse(BaseModel):
    ok: bool = True
