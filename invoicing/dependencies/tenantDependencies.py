from typing import Annotated
from fastapi import Depends, Request, HTTPException, status
from uuid import UUID

from invoicing.core.config import settings


def get_tenant_id(request: Request) -> UUID:
    """Extract tenant_id from request state set by TenantMiddleware"""
    if not hasattr(request.state, 'tenant_id'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Tenant context not found. Ensure {settings.TENANT_HEADER} header is provided."
        )
    return request.state.tenant_id


TenantId = Annotated[UUID, Depends(get_tenant_id)]
