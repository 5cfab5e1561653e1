"""SharePoint Online site permission management through Microsoft Graph.

Application access to individual sites (the ``Sites.Selected`` model) is
granted through ``/sites/{site-id}/permissions``. Each supported action is a
member of ``SitePermissionAction`` and dispatched by
``SitePermissionManager.execute``.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlparse

from .directory import GraphApi

logger = logging.getLogger(__name__)


class SitePermissionAction(str, Enum):
    """Operations supported on site permissions."""

    LIST = "list"
    GRANT = "grant"
    UPDATE = "update"
    REVOKE = "revoke"


class SitePermissionRole(str, Enum):
    """Roles that can be granted to an application on a site."""

    READ = "read"
    WRITE = "write"
    MANAGE = "manage"
    FULL_CONTROL = "fullcontrol"


# Graph only accepts these roles when a permission is created;
# higher roles are applied with a follow-up update
CREATABLE_ROLES = {SitePermissionRole.READ, SitePermissionRole.WRITE}


@dataclass
class SitePermission:
    """One application permission on a site."""

    permission_id: str
    roles: List[str] = field(default_factory=list)
    app_id: Optional[str] = None
    app_display_name: Optional[str] = None

    @classmethod
    def from_graph(cls, data: Dict[str, Any]) -> "SitePermission":
        identities = data.get("grantedToIdentitiesV2") or data.get("grantedToIdentities") or []
        application: Dict[str, Any] = {}
        for identity in identities:
            if identity.get("application"):
                application = identity["application"]
                break
        return cls(
            permission_id=data.get("id", ""),
            roles=list(data.get("roles") or []),
            app_id=application.get("id"),
            app_display_name=application.get("displayName"),
        )


@dataclass
class SiteInfo:
    """A resolved SharePoint site."""

    site_id: str
    display_name: str = ""
    web_url: str = ""


def parse_roles(values: Sequence[str]) -> List[SitePermissionRole]:
    """Parse role names, rejecting unknown ones.

    Raises:
        ValueError: If a role is not a SitePermissionRole value
    """
    roles = []
    for value in values:
        try:
            roles.append(SitePermissionRole(value.strip().lower()))
        except ValueError:
            valid = ", ".join(r.value for r in SitePermissionRole)
            raise ValueError(f"Invalid role '{value}'. Valid roles: {valid}")
    if not roles:
        raise ValueError("At least one role is required")
    return roles


class SitePermissionManager:
    """Lists, grants, updates and revokes application permissions on sites."""

    def __init__(self, graph: GraphApi):
        self.graph = graph
        self._handlers: Dict[SitePermissionAction, Callable[..., Any]] = {
            SitePermissionAction.LIST: self.list_permissions,
            SitePermissionAction.GRANT: self.grant,
            SitePermissionAction.UPDATE: self.update,
            SitePermissionAction.REVOKE: self.revoke,
        }

    def execute(self, action: SitePermissionAction, site: str, **kwargs: Any) -> Any:
        """Resolve the site and run the requested action on it.

        Args:
            action: Action to perform
            site: Site URL or site id
            **kwargs: Arguments of the action handler

        Returns:
            Whatever the action handler returns
        """
        action = SitePermissionAction(action)
        handler = self._handlers[action]
        site_info = self.resolve_site(site)
        logger.info("%s permissions on site %s", action.value.title(), site_info.site_id)
        return handler(site_info.site_id, **kwargs)

    def resolve_site(self, site: str) -> SiteInfo:
        """Resolve a site URL (or pass through a site id) to a SiteInfo.

        Args:
            site: ``https://contoso.sharepoint.com/sites/Finance`` or a Graph site id
        """
        if "://" in site:
            parsed = urlparse(site)
            if not parsed.hostname:
                raise ValueError(f"Invalid site URL: {site}")
            path = parsed.path.rstrip("/")
            resource = f"sites/{parsed.hostname}:{path}" if path else f"sites/{parsed.hostname}"
        else:
            resource = f"sites/{site}"

        data = self.graph.get(resource, params={"$select": "id,displayName,webUrl"})
        return SiteInfo(
            site_id=data["id"],
            display_name=data.get("displayName", ""),
            web_url=data.get("webUrl", ""),
        )

    def list_permissions(self, site_id: str) -> List[SitePermission]:
        data = self.graph.get(f"sites/{site_id}/permissions")
        return [SitePermission.from_graph(p) for p in data.get("value", [])]

    def find_app_permissions(self, site_id: str, app_id: str) -> List[SitePermission]:
        return [p for p in self.list_permissions(site_id) if p.app_id == app_id]

    def grant(
        self,
        site_id: str,
        app_id: str,
        roles: Sequence[SitePermissionRole],
        display_name: Optional[str] = None,
    ) -> SitePermission:
        """Grant an application roles on a site.

        Roles above ``write`` are applied by creating a ``write`` permission
        and updating it afterwards.
        """
        roles = [SitePermissionRole(r) for r in roles]
        initial = [r for r in roles if r in CREATABLE_ROLES] or [SitePermissionRole.WRITE]
        body = {
            "roles": [r.value for r in initial],
            "grantedToIdentities": [
                {"application": {"id": app_id, "displayName": display_name or app_id}}
            ],
        }
        created = SitePermission.from_graph(self.graph.post(f"sites/{site_id}/permissions", json=body))

        if set(roles) != set(initial):
            return self.update(site_id, created.permission_id, roles)
        return created

    def update(
        self, site_id: str, permission_id: str, roles: Sequence[SitePermissionRole]
    ) -> SitePermission:
        data = self.graph.patch(
            f"sites/{site_id}/permissions/{permission_id}",
            json={"roles": [SitePermissionRole(r).value for r in roles]},
        )
        return SitePermission.from_graph(data)

    def revoke(
        self,
        site_id: str,
        permission_id: Optional[str] = None,
        app_id: Optional[str] = None,
    ) -> List[str]:
        """Delete a permission by id, or every permission held by an application.

        Returns:
            Ids of the deleted permissions
        """
        if permission_id:
            targets = [permission_id]
        elif app_id:
            targets = [p.permission_id for p in self.find_app_permissions(site_id, app_id)]
        else:
            raise ValueError("Either permission_id or app_id is required")

        for target in targets:
            self.graph.delete(f"sites/{site_id}/permissions/{target}")
        return targets
