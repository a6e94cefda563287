"""
Puntos de extensión de facturas.

Los plugins del workspace registran callbacks asíncronos por nombre de hook;
``invoke`` los espera en orden de registro y cualquier fallo aborta el
guardado que los contiene.
"""
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.core.exceptions import InvoicingError, DependencyError

logger = logging.getLogger(__name__)

INVOICE_PRE_SAVE = "invoice.preSave"
INVOICE_POST_SAVE = "invoice.postSave"
ITEM_PRE_SAVE = "item.preSave"
ITEM_POST_SAVE = "item.postSave"
INVOICE_PRE_DELETE = "invoice.preDelete"


@dataclass
class InvoiceHookContext:
    invoice: Any
    data: Any
    session: AsyncSession
    tenant_id: UUID
    created: bool


@dataclass
class ItemHookContext:
    item: Any
    data: Any
    item_id: Optional[UUID]
    session: AsyncSession
    tenant_id: UUID


@dataclass
class InvoiceDeleteContext:
    invoice_id: UUID
    session: AsyncSession
    tenant_id: UUID


HookCallback = Callable[[Any], Awaitable[None]]


class HookRegistry:
    def __init__(self):
        self._hooks: Dict[str, List[HookCallback]] = defaultdict(list)

    def register(self, name: str, callback: HookCallback) -> HookCallback:
        self._hooks[name].append(callback)
        return callback

    def on(self, name: str):
        """Decorador: ``@hooks.on("invoice.preSave")``"""
        def decorator(callback: HookCallback) -> HookCallback:
            return self.register(name, callback)
        return decorator

    def unregister(self, name: str, callback: HookCallback) -> None:
        if callback in self._hooks.get(name, []):
            self._hooks[name].remove(callback)

    def clear(self, name: Optional[str] = None) -> None:
        if name is None:
            self._hooks.clear()
        else:
            self._hooks.pop(name, None)

    def callbacks(self, name: str) -> List[HookCallback]:
        return list(self._hooks.get(name, []))

    async def invoke(self, name: str, context: Any) -> None:
        for callback in self.callbacks(name):
            try:
                await callback(context)
            except InvoicingError:
                raise
            except Exception as e:
                logger.error(f"Hook {name} ({getattr(callback, '__name__', callback)}) failed: {e}", exc_info=True)
                raise DependencyError(f"Hook '{name}' failed: {e}") from e


# Registro global del proceso; los plugins se registran al importar
invoice_hooks = HookRegistry()
