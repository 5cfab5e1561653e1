"""Per-user MFA operations.

Classes:
    ExportMfaStateOperation: Reads per-user MFA state and registered methods
    DisableMfaOperation: Sets per-user MFA state to disabled
    MfaGroupSyncOperation: Keeps a group's membership in line with MFA capability
"""

import logging
from typing import Any, Dict, List

from ..engine.models import OperationResult, WorkItem
from ..graph_clients.manager import GraphRequestError
from .directory import GraphApi, resolve_user_id

logger = logging.getLogger(__name__)

# Per-user MFA state lives on the beta endpoint only
REQUIREMENTS_VERSION = "beta"

MFA_STATE_DISABLED = "disabled"

# @odata.type suffixes of methods that satisfy a second factor
STRONG_METHOD_TYPES = {
    "microsoftAuthenticatorAuthenticationMethod": "microsoftAuthenticator",
    "phoneAuthenticationMethod": "phone",
    "fido2AuthenticationMethod": "fido2",
    "softwareOathAuthenticationMethod": "softwareOath",
    "windowsHelloForBusinessAuthenticationMethod": "windowsHelloForBusiness",
    "platformCredentialAuthenticationMethod": "platformCredential",
}
WEAK_METHOD_TYPES = {
    "passwordAuthenticationMethod": "password",
    "emailAuthenticationMethod": "email",
    "temporaryAccessPassAuthenticationMethod": "temporaryAccessPass",
}


def get_per_user_mfa_state(graph: GraphApi, user_key: str) -> str:
    """Return ``enabled``, ``enforced`` or ``disabled`` for a user."""
    requirements = graph.get(
        f"users/{user_key}/authentication/requirements", version=REQUIREMENTS_VERSION
    )
    return str(requirements.get("perUserMfaState") or "unknown")


def list_method_types(graph: GraphApi, user_key: str) -> List[str]:
    """Return the short names of a user's registered authentication methods."""
    methods = graph.get(f"users/{user_key}/authentication/methods").get("value", [])
    names = []
    for method in methods:
        odata_type = str(method.get("@odata.type", "")).rsplit(".", 1)[-1]
        names.append(
            STRONG_METHOD_TYPES.get(odata_type) or WEAK_METHOD_TYPES.get(odata_type) or odata_type
        )
    return sorted(set(names))


def is_mfa_capable(method_names: List[str]) -> bool:
    return any(name in STRONG_METHOD_TYPES.values() for name in method_names)


class ExportMfaStateOperation:
    """Reads per-user MFA state and registered methods for one user."""

    name = "mfa-export"
    report_fields = ["ObjectId", "PerUserMfaState", "MfaMethods", "MfaCapable"]

    def __init__(self, graph: GraphApi, include_methods: bool = True):
        self.graph = graph
        self.include_methods = include_methods

    def __call__(self, item: WorkItem) -> OperationResult:
        user_key = item.lookup_key
        state = get_per_user_mfa_state(self.graph, user_key)
        details: Dict[str, Any] = {"ObjectId": item.resolved_key or "", "PerUserMfaState": state}

        if self.include_methods:
            methods = list_method_types(self.graph, user_key)
            details["MfaMethods"] = methods
            details["MfaCapable"] = is_mfa_capable(methods)

        return OperationResult.success(item, details=details)


class DisableMfaOperation:
    """Disables per-user MFA for one user; already disabled users are skipped."""

    name = "mfa-disable"
    report_fields = ["PreviousState"]

    def __init__(self, graph: GraphApi):
        self.graph = graph

    def __call__(self, item: WorkItem) -> OperationResult:
        user_key = item.lookup_key
        previous = get_per_user_mfa_state(self.graph, user_key)
        if previous == MFA_STATE_DISABLED:
            return OperationResult.skipped(
                item, "Per-user MFA already disabled", details={"PreviousState": previous}
            )

        self.graph.patch(
            f"users/{user_key}/authentication/requirements",
            json={"perUserMfaState": MFA_STATE_DISABLED},
            version=REQUIREMENTS_VERSION,
        )
        logger.info("Disabled per-user MFA for %s (was %s)", item.identifier, previous)
        return OperationResult.success(item, details={"PreviousState": previous})


class MfaGroupSyncOperation:
    """Adds MFA-capable users to a group and optionally removes incapable ones."""

    name = "mfa-sync-group"
    report_fields = ["ObjectId", "MfaMethods", "MfaCapable", "Action"]

    def __init__(self, graph: GraphApi, group_id: str, remove_incapable: bool = False):
        """Initialize the sync operation.

        Args:
            graph: Graph client
            group_id: Object id of the target group
            remove_incapable: Remove members that have no strong method
        """
        self.graph = graph
        self.group_id = group_id
        self.remove_incapable = remove_incapable
        self.graph_endpoint = getattr(graph, "graph_endpoint", "https://graph.microsoft.com")

    def _is_member(self, user_id: str) -> bool:
        response = self.graph.post(
            f"users/{user_id}/checkMemberGroups", json={"groupIds": [self.group_id]}
        )
        return self.group_id in response.get("value", [])

    def _add_member(self, user_id: str) -> bool:
        try:
            self.graph.post(
                f"groups/{self.group_id}/members/$ref",
                json={"@odata.id": f"{self.graph_endpoint}/v1.0/directoryObjects/{user_id}"},
            )
        except GraphRequestError as e:
            if e.status_code == 400 and "already exist" in e.message:
                return False
            raise
        return True

    def __call__(self, item: WorkItem) -> OperationResult:
        user_id = resolve_user_id(self.graph, item)
        methods = list_method_types(self.graph, user_id)
        capable = is_mfa_capable(methods)
        is_member = self._is_member(user_id)
        details: Dict[str, Any] = {
            "ObjectId": user_id,
            "MfaMethods": methods,
            "MfaCapable": capable,
            "Action": "none",
        }

        if capable and not is_member:
            if self._add_member(user_id):
                details["Action"] = "added"
                return OperationResult.success(item, resolved_key=user_id, details=details)
            return OperationResult.skipped(
                item, "Already a member", resolved_key=user_id, details=details
            )

        if capable:
            return OperationResult.skipped(
                item, "Already a member", resolved_key=user_id, details=details
            )

        if is_member and self.remove_incapable:
            self.graph.delete(f"groups/{self.group_id}/members/{user_id}/$ref")
            details["Action"] = "removed"
            return OperationResult.success(item, resolved_key=user_id, details=details)

        return OperationResult.skipped(
            item, "No strong authentication method registered", resolved_key=user_id, details=details
        )
