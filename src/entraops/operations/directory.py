"""User lookups shared by the per-item operations."""

from typing import Any, Dict, List, Protocol

from ..engine.models import WorkItem

USER_SELECT_FIELDS = "id,userPrincipalName,displayName,accountEnabled"
ENUMERATED_FIELDNAMES = ["UserPrincipalName", "ObjectId", "DisplayName"]


class GraphApi(Protocol):
    """The subset of GraphClientManager the operations rely on."""

    def request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        ...

    def get(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        ...

    def post(self, path: str, json: Any = None, **kwargs: Any) -> Dict[str, Any]:
        ...

    def patch(self, path: str, json: Any = None, **kwargs: Any) -> Dict[str, Any]:
        ...

    def delete(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        ...


def resolve_user_id(graph: GraphApi, item: WorkItem) -> str:
    """Return the object id of the item's user.

    Uses the pre-resolved key when present, otherwise looks the user up by
    its principal name.

    Raises:
        GraphNotFoundError: If the user does not exist
    """
    if item.resolved_key:
        return item.resolved_key
    user = graph.get(f"users/{item.identifier}", params={"$select": "id"})
    return user["id"]


def enumerate_users(graph: Any, include_disabled: bool = True) -> List[WorkItem]:
    """Build work items for every user in the directory.

    Args:
        graph: Connected GraphClientManager
        include_disabled: Keep users whose account is disabled

    Returns:
        Work items whose raw records use ``ENUMERATED_FIELDNAMES``
    """
    items: List[WorkItem] = []
    for user in graph.iter_pages("users", params={"$select": USER_SELECT_FIELDS, "$top": 999}):
        if not include_disabled and user.get("accountEnabled") is False:
            continue
        upn = user.get("userPrincipalName") or ""
        object_id = user.get("id") or ""
        if not (upn or object_id):
            continue
        items.append(
            WorkItem(
                identifier=upn or object_id,
                resolved_key=object_id or None,
                raw_record={
                    "UserPrincipalName": upn,
                    "ObjectId": object_id,
                    "DisplayName": user.get("displayName") or "",
                },
                row_number=len(items) + 1,
            )
        )
    return items
