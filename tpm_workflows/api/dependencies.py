"""
Request dependencies: the workflow system container and the per-request
tenant context.
"""

from typing import Optional, Tuple

import jwt
from fastapi import Depends, HTTPException, Query, Request, status

from ..audit import AuditTrail
from ..config import TPMConfig
from ..engine import WorkflowEngine
from ..storage import InMemoryStorage, StorageInterface, create_storage
from ..tenancy import TenantContext, TenantResolver


class WorkflowSystem:
    """Storage, audit trail, engine and tenant resolver initialized together"""

    def __init__(self, config: TPMConfig, storage: Optional[StorageInterface] = None):
        self.config = config
        if storage is None:
            storage = create_storage(config.database_url) if config.use_sqlite else InMemoryStorage()
        self.storage = storage
        self.audit_trail = AuditTrail(self.storage, enabled=config.enable_audit_logging)
        self.engine = WorkflowEngine(self.storage, self.audit_trail)
        self.tenant_resolver = TenantResolver(
            jwt_secret=config.jwt_secret,
            jwt_algorithm=config.jwt_algorithm,
            default_tenant_id=config.default_tenant_id
        )

    def close(self) -> None:
        self.storage.close()


def get_workflow_system(request: Request) -> WorkflowSystem:
    return request.app.state.workflow_system


def get_tenant_context(
    request: Request,
    system: WorkflowSystem = Depends(get_workflow_system)
) -> TenantContext:
    """Resolve tenant and actor once for the request"""
    try:
        return system.tenant_resolver.resolve(request.headers)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_engine(system: WorkflowSystem = Depends(get_workflow_system)) -> WorkflowEngine:
    return system.engine


def get_page(
    limit: Optional[int] = Query(None, ge=1, description="Page size"),
    offset: int = Query(0, ge=0),
    system: WorkflowSystem = Depends(get_workflow_system)
) -> Tuple[int, int]:
    """Page size and offset, capped at the configured maximum"""
    size = min(limit or system.config.default_page_size, system.config.max_page_size)
    return size, offset
