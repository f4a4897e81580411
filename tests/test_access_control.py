"""
Tests for the access decision engine.
"""
import pytest

from auth.access_control import (
    AccessDecision, Outcome, Principal, authorize_owner_access, can_access,
    can_delete, can_update, resolve,
)
from auth.manager_assignment import reassign_manager
from auth.roles import Role
from core.exceptions import ForbiddenError


def actor(user_id, role):
    return Principal(id=user_id, role=role)


class TestCanAccess:

    @pytest.mark.parametrize("role", list(Role))
    def test_self_access_always_allowed(self, role):
        assert can_access(actor(7, role), 7) == AccessDecision.allow()

    def test_admin_allowed(self):
        assert can_access(actor(1, Role.ADMIN), 20).outcome is Outcome.ALLOW

    def test_editor_allowed(self):
        assert can_access(actor(3, Role.EDITOR), 20).outcome is Outcome.ALLOW

    def test_client_denied(self):
        assert can_access(actor(21, Role.CLIENT), 20).outcome is Outcome.DENY

    def test_manager_is_conditional(self):
        decision = can_access(actor(5, Role.MANAGER), 20)
        assert decision.needs_manager_check
        assert decision.owner_id == 20


class TestResolve:

    def test_manager_of_owner(self):
        manager = actor(10, Role.MANAGER)
        decision = can_access(manager, 20)
        assert resolve(decision, manager, owner_manager_id=10)
        assert not resolve(decision, manager, owner_manager_id=5)
        assert not resolve(decision, manager, owner_manager_id=None)

    def test_unconditional_outcomes(self):
        someone = actor(1, Role.CLIENT)
        assert resolve(AccessDecision.allow(), someone, None)
        assert not resolve(AccessDecision.deny(), someone, 1)


class TestMutations:

    def test_delete_owner_or_admin(self):
        assert can_delete(actor(20, Role.CLIENT), 20)
        assert can_delete(actor(1, Role.ADMIN), 20)
        assert not can_delete(actor(3, Role.EDITOR), 20)
        assert not can_delete(actor(10, Role.MANAGER), 20)

    def test_update_owner_only(self):
        assert can_update(actor(20, Role.CLIENT), 20)
        assert not can_update(actor(1, Role.ADMIN), 20)


class TestAuthorizeOwnerAccess:

    def test_assigned_manager(self, db, make_user, principal):
        manager = make_user(Role.MANAGER)
        client = make_user(Role.CLIENT, manager_id=manager.id)
        authorize_owner_access(db, principal(manager), client.id)

    def test_unassigned_manager(self, db, make_user, principal):
        manager = make_user(Role.MANAGER)
        other = make_user(Role.MANAGER)
        client = make_user(Role.CLIENT, manager_id=other.id)
        with pytest.raises(ForbiddenError) as exc:
            authorize_owner_access(db, principal(manager), client.id)
        assert "not your assigned client" in exc.value.message

    def test_reassignment_revokes_access_immediately(self, db, make_user, principal):
        old_manager = make_user(Role.MANAGER)
        new_manager = make_user(Role.MANAGER)
        client = make_user(Role.CLIENT, manager_id=old_manager.id)
        authorize_owner_access(db, principal(old_manager), client.id)

        reassign_manager(db, client.id, new_manager.id)

        with pytest.raises(ForbiddenError):
            authorize_owner_access(db, principal(old_manager), client.id)
        authorize_owner_access(db, principal(new_manager), client.id)

    def test_client_denied(self, db, make_user, principal):
        first = make_user(Role.CLIENT)
        second = make_user(Role.CLIENT)
        with pytest.raises(ForbiddenError):
            authorize_owner_access(db, principal(first), second.id)
