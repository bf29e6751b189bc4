"""
Permission Matrix - role to capability lookup.

Pure data. Server-side checks in the workflow engine and roster are the
enforcement point; clients read the same table from GET /roles.
"""

from dataclasses import asdict, dataclass

from castflow.core.models import UserRole


@dataclass(frozen=True)
class Permissions:
    """Capabilities granted by a role."""
    can_create_episodes: bool = False
    can_delete_episodes: bool = False
    can_invite_members: bool = False
    can_manage_team: bool = False
    can_publish: bool = False
    can_approve: bool = False
    can_edit_all: bool = False
    can_view_analytics: bool = False
    can_manage_workspace: bool = False

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


ROLE_PERMISSIONS: dict[UserRole, Permissions] = {
    UserRole.HOST: Permissions(
        can_create_episodes=True,
        can_delete_episodes=True,
        can_invite_members=True,
        can_manage_team=True,
        can_publish=True,
        can_approve=True,
        can_edit_all=True,
        can_view_analytics=True,
        can_manage_workspace=True,
    ),
    UserRole.EDITOR: Permissions(
        can_approve=True,
        can_edit_all=True,
        can_view_analytics=True,
    ),
    UserRole.MARKETER: Permissions(
        can_view_analytics=True,
    ),
    UserRole.VA: Permissions(
        can_create_episodes=True,
    ),
}


def permissions_for(role: UserRole) -> Permissions:
    """Return the capability set of a role."""
    return ROLE_PERMISSIONS[UserRole(role)]


def grants_within(role: UserRole, ceiling: UserRole) -> bool:
    """True when `role` holds no capability that `ceiling` lacks."""
    held = permissions_for(ceiling).to_dict()
    return all(held[name] for name, granted in permissions_for(role).to_dict().items() if granted)
