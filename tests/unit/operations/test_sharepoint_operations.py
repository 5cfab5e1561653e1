"""Tests for SharePoint site permission management."""

import pytest

from src.entraops.operations.sharepoint import (
    SitePermission,
    SitePermissionAction,
    SitePermissionManager,
    SitePermissionRole,
    parse_roles,
)
from tests.fixtures.graph import FakeGraph

SITE_URL = "https://contoso.sharepoint.com/sites/Finance"
SITE_ID = "contoso.sharepoint.com,1111,2222"


def _permission(permission_id, roles, app_id="app-1", name="Backup App", v2=True):
    key = "grantedToIdentitiesV2" if v2 else "grantedToIdentities"
    return {
        "id": permission_id,
        "roles": roles,
        key: [{"application": {"id": app_id, "displayName": name}}],
    }


@pytest.fixture
def graph():
    return FakeGraph(
        {
            ("GET", "sites/contoso.sharepoint.com:/sites/Finance"): {
                "id": SITE_ID,
                "displayName": "Finance",
                "webUrl": SITE_URL,
            },
            ("GET", f"sites/{SITE_ID}/permissions"): {
                "value": [
                    _permission("perm-1", ["read"]),
                    _permission("perm-2", ["write"], app_id="app-2", name="Other", v2=False),
                ]
            },
        },
        connected=True,
    )


class TestParseRoles:
    """Test role parsing."""

    def test_valid_roles(self):
        assert parse_roles(["Read", " fullcontrol "]) == [
            SitePermissionRole.READ,
            SitePermissionRole.FULL_CONTROL,
        ]

    def test_invalid_role(self):
        with pytest.raises(ValueError, match="Valid roles: read, write, manage, fullcontrol"):
            parse_roles(["owner"])

    def test_no_roles(self):
        with pytest.raises(ValueError):
            parse_roles([])


class TestSitePermissionManager:
    """Test SitePermissionManager actions."""

    def test_resolve_site_from_url(self, graph):
        site = SitePermissionManager(graph).resolve_site(SITE_URL + "/")

        assert site.site_id == SITE_ID
        assert site.display_name == "Finance"

    def test_resolve_root_site(self):
        graph = FakeGraph({("GET", "sites/contoso.sharepoint.com"): {"id": "root-id"}})

        assert SitePermissionManager(graph).resolve_site("https://contoso.sharepoint.com").site_id == "root-id"

    def test_resolve_site_by_id(self):
        graph = FakeGraph({("GET", f"sites/{SITE_ID}"): {"id": SITE_ID}})

        assert SitePermissionManager(graph).resolve_site(SITE_ID).site_id == SITE_ID

    def test_list(self, graph):
        permissions = SitePermissionManager(graph).execute(SitePermissionAction.LIST, SITE_URL)

        assert permissions == [
            SitePermission("perm-1", ["read"], "app-1", "Backup App"),
            SitePermission("perm-2", ["write"], "app-2", "Other"),
        ]

    def test_grant_read(self, graph):
        graph.routes[("POST", f"sites/{SITE_ID}/permissions")] = _permission("perm-3", ["read"])

        permission = SitePermissionManager(graph).execute(
            SitePermissionAction.GRANT,
            SITE_URL,
            app_id="app-1",
            roles=[SitePermissionRole.READ],
            display_name="Backup App",
        )

        assert permission.permission_id == "perm-3"
        _, kwargs = graph.calls_for("POST")[0]
        assert kwargs["json"] == {
            "roles": ["read"],
            "grantedToIdentities": [{"application": {"id": "app-1", "displayName": "Backup App"}}],
        }
        assert graph.calls_for("PATCH") == []

    def test_grant_fullcontrol_creates_write_then_updates(self, graph):
        graph.routes[("POST", f"sites/{SITE_ID}/permissions")] = _permission("perm-3", ["write"])
        graph.routes[("PATCH", f"sites/{SITE_ID}/permissions/perm-3")] = _permission(
            "perm-3", ["fullcontrol"]
        )

        permission = SitePermissionManager(graph).execute(
            SitePermissionAction.GRANT, SITE_URL, app_id="app-1", roles=[SitePermissionRole.FULL_CONTROL]
        )

        assert graph.calls_for("POST")[0][1]["json"]["roles"] == ["write"]
        assert graph.calls_for("PATCH")[0][1]["json"] == {"roles": ["fullcontrol"]}
        assert permission.roles == ["fullcontrol"]

    def test_update(self, graph):
        graph.routes[("PATCH", f"sites/{SITE_ID}/permissions/perm-1")] = _permission(
            "perm-1", ["write"]
        )

        permission = SitePermissionManager(graph).execute(
            SitePermissionAction.UPDATE, SITE_URL, permission_id="perm-1", roles=["write"]
        )

        assert permission.roles == ["write"]

    def test_revoke_by_permission_id(self, graph):
        revoked = SitePermissionManager(graph).execute(
            SitePermissionAction.REVOKE, SITE_URL, permission_id="perm-2"
        )

        assert revoked == ["perm-2"]
        assert graph.calls_for("DELETE")[0][0] == f"sites/{SITE_ID}/permissions/perm-2"

    def test_revoke_by_app_id(self, graph):
        revoked = SitePermissionManager(graph).execute(
            SitePermissionAction.REVOKE, SITE_URL, app_id="app-1"
        )

        assert revoked == ["perm-1"]

    def test_revoke_requires_target(self, graph):
        with pytest.raises(ValueError):
            SitePermissionManager(graph).execute(SitePermissionAction.REVOKE, SITE_URL)

    def test_execute_accepts_action_value(self, graph):
        permissions = SitePermissionManager(graph).execute("list", SITE_URL)
        assert len(permissions) == 2
