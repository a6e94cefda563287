"""
Sincronización de ítems de factura.

Compara los ítems persistidos con la lista deseada y calcula qué crear,
qué actualizar y qué borrar. Es puro: no toca la base de datos, así que un
error de validación aborta antes de cualquier escritura.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence
import logging

from invoicing.core.exceptions import ValidationError
from invoicing.modules.invoices.models import InvoiceItem
from invoicing.modules.invoices.schemas import InvoiceItemIn

logger = logging.getLogger(__name__)

# invoice y product son inmutables; si se reenvían se ignoran
MUTABLE_FIELDS = ("quantity", "unit_price", "discount_percent", "note")
NOT_NULL_FIELDS = ("quantity", "unit_price")


@dataclass
class ItemUpdate:
    item: InvoiceItem
    data: InvoiceItemIn
    changes: Dict[str, Any]


@dataclass
class ReconciliationPlan:
    to_create: List[InvoiceItemIn] = field(default_factory=list)
    to_update: List[ItemUpdate] = field(default_factory=list)
    to_delete: List[InvoiceItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_delete)

    def summary(self) -> str:
        return f"create={len(self.to_create)} update={len(self.to_update)} delete={len(self.to_delete)}"


class ItemReconciler:

    @staticmethod
    def changed_fields(item: InvoiceItem, data: InvoiceItemIn) -> Dict[str, Any]:
        """Campos mutables enviados cuyo valor difiere del persistido"""
        changes = {}
        for name in MUTABLE_FIELDS:
            if name not in data.model_fields_set:
                continue
            value = getattr(data, name)
            if value is None and name in NOT_NULL_FIELDS:
                raise ValidationError(
                    f"Item {item.id}: '{name}' cannot be null",
                    detail={"item_id": str(item.id), "field": name}
                )
            if getattr(item, name) != value:
                changes[name] = value
        return changes

    def reconcile(
        self,
        existing: Sequence[InvoiceItem],
        desired: Sequence[InvoiceItemIn]
    ) -> ReconciliationPlan:
        existing_by_id = {item.id: item for item in existing}
        desired_ids = set()
        plan = ReconciliationPlan()

        for data in desired:
            if data.id is None:
                if data.product is None:
                    raise ValidationError(
                        "New invoice items require a product reference",
                        detail={"item": data.model_dump(mode="json")}
                    )
                plan.to_create.append(data)
                continue

            if data.id in desired_ids:
                raise ValidationError(
                    f"Item {data.id} appears more than once",
                    detail={"item_id": str(data.id)}
                )
            desired_ids.add(data.id)

            item = existing_by_id.get(data.id)
            if item is None:
                raise ValidationError(
                    f"Item {data.id} does not belong to this invoice",
                    detail={"item_id": str(data.id)}
                )

            changes = self.changed_fields(item, data)
            if changes:
                plan.to_update.append(ItemUpdate(item=item, data=data, changes=changes))

        plan.to_delete = [
            item for item_id, item in existing_by_id.items()
            if item_id not in desired_ids
        ]

        logger.debug(f"Item reconciliation plan: {plan.summary()}")
        return plan
