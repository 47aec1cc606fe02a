"""
Tests for project membership rules and authorization.
"""

import pytest

from cybertask.domain.errors import DomainError, ErrorKind
from cybertask.domain.models import Project
from cybertask.services.membership_service import MEMBER_ACTIONS, Action, MembershipService


@pytest.fixture
def membership():
    return MembershipService()


@pytest.fixture
def project():
    return Project(id="p1", name="Apollo", owner_id="owner", member_ids={"owner", "dev", "qa"})


class TestMembers:

    def test_add_member(self, membership, project):
        updated = membership.add_member(project, "new")
        assert "new" in updated.member_ids
        assert "new" not in project.member_ids

    def test_add_existing_member_is_noop(self, membership, project):
        assert membership.add_member(project, "dev") is project

    def test_remove_member(self, membership, project):
        updated = membership.remove_member(project, "dev")
        assert updated.member_ids == {"owner", "qa"}

    def test_remove_owner_always_fails(self, membership, project):
        with pytest.raises(DomainError) as exc:
            membership.remove_member(project, "owner")
        assert exc.value.kind == ErrorKind.CANNOT_REMOVE_OWNER

    def test_remove_owner_of_solo_project_fails(self, membership):
        solo = Project(id="p2", name="Solo", owner_id="owner", member_ids={"owner"})
        with pytest.raises(DomainError) as exc:
            membership.remove_member(solo, "owner")
        assert exc.value.kind == ErrorKind.CANNOT_REMOVE_OWNER

    def test_remove_non_member_fails(self, membership, project):
        with pytest.raises(DomainError) as exc:
            membership.remove_member(project, "stranger")
        assert exc.value.kind == ErrorKind.NOT_A_MEMBER

    def test_transfer_then_remove_previous_owner(self, membership, project):
        transferred = membership.transfer_ownership(project, "dev")
        assert transferred.owner_id == "dev"
        assert "owner" in transferred.member_ids
        assert "owner" not in membership.remove_member(transferred, "owner").member_ids

    def test_transfer_to_non_member_fails(self, membership, project):
        with pytest.raises(DomainError) as exc:
            membership.transfer_ownership(project, "stranger")
        assert exc.value.kind == ErrorKind.NOT_A_MEMBER


class TestAuthorization:

    @pytest.mark.parametrize("action", list(Action))
    def test_owner_may_do_everything(self, membership, project, action):
        assert membership.is_authorized("owner", project, action)

    @pytest.mark.parametrize("action", list(Action))
    def test_member_permissions(self, membership, project, action):
        assert membership.is_authorized("dev", project, action) is (action in MEMBER_ACTIONS)

    def test_members_cannot_delete_project_or_remove_others(self, membership, project):
        assert not membership.is_authorized("dev", project, Action.DELETE_PROJECT)
        assert not membership.is_authorized("dev", project, Action.REMOVE_MEMBER)

    @pytest.mark.parametrize("action", list(Action))
    def test_outsider_may_do_nothing(self, membership, project, action):
        assert not membership.is_authorized("stranger", project, action)

    def test_require_raises_unauthorized(self, membership, project):
        with pytest.raises(DomainError) as exc:
            membership.require("dev", project, Action.DELETE_PROJECT)
        assert exc.value.kind == ErrorKind.UNAUTHORIZED
        assert exc.value.context["action"] == "delete_project"
