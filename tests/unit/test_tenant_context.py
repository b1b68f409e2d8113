"""
Unit tests for tenant context handling.
"""

import threading

import pytest

from connection_core.context import TenantContext, tenant_aware, tenant_context
from connection_core.exceptions import ErrorCode, TenantIsolationError, ValidationError


class TenantEcho:
    """Records the tenant seen inside tenant-aware calls."""

    @tenant_aware
    def current(self, tenant_id, payload=None):
        return TenantContext.get_current_tenant_id()


class TestTenantContext:
    """Test setting and scoping the current tenant."""

    def test_context_manager_restores_previous(self):
        TenantContext.set_current_tenant("tenant-acme")

        with tenant_context("tenant-globex"):
            assert TenantContext.get_current_tenant_id() == "tenant-globex"

        assert TenantContext.get_current_tenant_id() == "tenant-acme"

    def test_context_manager_clears_when_nothing_before(self):
        with tenant_context("tenant-acme"):
            pass

        assert TenantContext.get_current_tenant_id() is None

    @pytest.mark.parametrize("bad_tenant", ["", "   ", None])
    def test_empty_tenant_rejected(self, bad_tenant):
        with pytest.raises(ValidationError):
            TenantContext.set_current_tenant(bad_tenant)

    def test_tenant_is_thread_local(self):
        TenantContext.set_current_tenant("tenant-acme")
        seen = []

        worker = threading.Thread(target=lambda: seen.append(TenantContext.get_current_tenant_id()))
        worker.start()
        worker.join()

        assert seen == [None]


class TestTenantAware:
    """Test the tenant_aware decorator."""

    def test_positional_tenant(self):
        assert TenantEcho().current("tenant-acme") == "tenant-acme"
        assert TenantContext.get_current_tenant_id() is None

    def test_keyword_tenant(self):
        assert TenantEcho().current(tenant_id="tenant-globex") == "tenant-globex"

    def test_falls_back_to_current_context(self):
        echo = TenantEcho()
        with tenant_context("tenant-acme"):
            assert echo.current(None) == "tenant-acme"

    def test_no_tenant_anywhere(self):
        with pytest.raises(ValidationError):
            TenantEcho().current(None)


class TestCheckAccess:
    """Test the cross-tenant guard used by the credential stores."""

    def test_other_tenant_refused(self):
        with tenant_context("tenant-globex"):
            with pytest.raises(TenantIsolationError) as exc_info:
                TenantContext.check_access("tenant-acme")

        assert exc_info.value.error_code == ErrorCode.PERMISSION_DENIED
        assert exc_info.value.status_code == 403
        assert exc_info.value.context["requested_tenant_id"] == "tenant-acme"

    def test_same_tenant_allowed(self):
        with tenant_context("tenant-acme"):
            TenantContext.check_access("tenant-acme")

    def test_no_context_allowed(self):
        TenantContext.check_access("tenant-acme")
