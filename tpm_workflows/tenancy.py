"""
Multi-Tenancy Support Module

Every workflow record belongs to exactly one tenant (company). The tenant is
resolved once per request into a TenantContext that is passed explicitly to
every engine call; TenantScopedStorage applies it to each read and write so a
record owned by another tenant is indistinguishable from a missing one.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Mapping

import jwt

from .storage import StorageInterface


TENANT_FIELD = "company_id"


@dataclass(frozen=True)
class TenantContext:
    """Tenant and acting user for one request"""
    tenant_id: str
    user_id: Optional[str] = None

    def __post_init__(self):
        if not self.tenant_id:
            raise ValueError("tenant_id is required")


class TenantScopedStorage:
    """View over a StorageInterface restricted to one tenant

    Writes are stamped with the tenant id; reads filter by it. Transactions
    are delegated to the shared backend.
    """

    def __init__(self, inner_storage: StorageInterface, tenant_id: str):
        self.inner = inner_storage
        self.tenant_id = tenant_id

    def _owned(self, data: Optional[Dict[str, Any]]) -> bool:
        return data is not None and data.get(TENANT_FIELD) == self.tenant_id

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record, stamping the tenant"""
        existing = self.inner.load(table, record_id)
        if existing is not None and not self._owned(existing):
            # Never overwrite another tenant's record, even on id collision
            raise PermissionError(f"Record {record_id} in {table} belongs to another tenant")
        tenant_data = dict(data)
        tenant_data[TENANT_FIELD] = self.tenant_id
        self.inner.save(table, record_id, tenant_data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record if this tenant owns it"""
        result = self.inner.load(table, record_id)
        if not self._owned(result):
            return None
        return result

    def find(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Find this tenant's records matching filters"""
        tenant_filters = dict(filters or {})
        tenant_filters[TENANT_FIELD] = self.tenant_id
        return self.inner.find(table, tenant_filters)

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record if this tenant owns it"""
        if not self._owned(self.inner.load(table, record_id)):
            return False
        return self.inner.delete(table, record_id)

    def exists(self, table: str, record_id: str) -> bool:
        return self.load(table, record_id) is not None

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return len(self.find(table, filters))

    def atomic(self):
        return self.inner.atomic()


def scoped(storage: StorageInterface, ctx: TenantContext) -> TenantScopedStorage:
    return TenantScopedStorage(storage, ctx.tenant_id)


class TenantResolver:
    """Resolves the TenantContext for an incoming request

    Priority: verified bearer token claim, X-Tenant-ID header,
    X-Company-Code header, configured default.
    """

    TENANT_CLAIMS = ("tenant_id", "company_id")
    USER_CLAIMS = ("sub", "user_id")

    def __init__(self, jwt_secret: str, jwt_algorithm: str = "HS256",
                 default_tenant_id: str = "default"):
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.default_tenant_id = default_tenant_id

    def decode_token(self, token: str) -> Dict[str, Any]:
        """Verify a bearer token and return its claims

        Raises jwt.InvalidTokenError if the signature or expiry check fails.
        """
        return jwt.decode(token, self.jwt_secret, algorithms=[self.jwt_algorithm])

    @staticmethod
    def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
        value = headers.get(name) or headers.get(name.lower())
        return value.strip() if value and value.strip() else None

    def resolve(self, headers: Mapping[str, str]) -> TenantContext:
        """Build the TenantContext from request headers"""
        claims: Dict[str, Any] = {}
        auth_header = self._header(headers, "Authorization") or ""
        if auth_header.startswith("Bearer "):
            claims = self.decode_token(auth_header[7:])

        tenant_id = next((str(claims[c]) for c in self.TENANT_CLAIMS if claims.get(c)), None)
        if not tenant_id:
            tenant_id = (self._header(headers, "X-Tenant-ID")
                         or self._header(headers, "X-Company-Code")
                         or self.default_tenant_id)

        user_id = next((str(claims[c]) for c in self.USER_CLAIMS if claims.get(c)), None)
        if not user_id:
            user_id = self._header(headers, "X-User-ID")

        return TenantContext(tenant_id=tenant_id, user_id=user_id)
