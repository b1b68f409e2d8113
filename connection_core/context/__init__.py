"""Execution context helpers (tenant isolation)."""

from .tenant_context import TenantContext, tenant_aware, tenant_context

__all__ = ["TenantContext", "tenant_aware", "tenant_context"]
