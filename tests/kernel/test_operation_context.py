"""OperationContext roles and logging binding."""

from uuid import uuid4

import pytest

from shopfloor_kernel.domain.context import OperationContext
from shopfloor_kernel.logging_config import LogContext


class TestOverrideRoles:
    @pytest.mark.parametrize("role", ["DIRECTOR", "PROJECT_MANAGER", "director"])
    def test_override_roles(self, role):
        ctx = OperationContext(tenant_id=uuid4(), actor_id=uuid4(), role=role)
        assert ctx.has_override()

    @pytest.mark.parametrize("role", [None, "SUPERVISOR", "OPERATOR"])
    def test_other_roles_have_no_override(self, role):
        ctx = OperationContext(tenant_id=uuid4(), actor_id=uuid4(), role=role)
        assert not ctx.has_override()

    def test_custom_override_set(self):
        ctx = OperationContext(
            tenant_id=uuid4(), actor_id=uuid4(), role="SUPERVISOR",
            override_roles=frozenset({"SUPERVISOR"}),
        )
        assert ctx.has_override()

    def test_with_role_keeps_identity(self):
        ctx = OperationContext(tenant_id=uuid4(), actor_id=uuid4(), correlation_id="c-1")
        promoted = ctx.with_role("DIRECTOR")
        assert promoted.tenant_id == ctx.tenant_id
        assert promoted.actor_id == ctx.actor_id
        assert promoted.correlation_id == "c-1"
        assert promoted.has_override()
        assert not ctx.has_override()


class TestValidation:
    def test_tenant_required(self):
        with pytest.raises(ValueError):
            OperationContext(tenant_id=None, actor_id=uuid4())

    def test_actor_required(self):
        with pytest.raises(ValueError):
            OperationContext(tenant_id=uuid4(), actor_id=None)


def test_bind_logging_sets_and_restores_context():
    ctx = OperationContext(tenant_id=uuid4(), actor_id=uuid4(), correlation_id="corr-9")
    with ctx.bind_logging("dispatch"):
        fields = LogContext.get_all()
        assert fields["tenant_id"] == str(ctx.tenant_id)
        assert fields["operation"] == "dispatch"
        assert fields["correlation_id"] == "corr-9"
    assert LogContext.get_all() == {}
