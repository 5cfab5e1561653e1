"""Per-item operations plugged into the bulk engine, plus SharePoint permissions."""

from .directory import ENUMERATED_FIELDNAMES, enumerate_users, resolve_user_id
from .mfa import DisableMfaOperation, ExportMfaStateOperation, MfaGroupSyncOperation
from .password import PasswordResetOperation, generate_password
from .sharepoint import (
    SitePermission,
    SitePermissionAction,
    SitePermissionManager,
    SitePermissionRole,
)

__all__ = [
    "DisableMfaOperation",
    "ENUMERATED_FIELDNAMES",
    "ExportMfaStateOperation",
    "MfaGroupSyncOperation",
    "PasswordResetOperation",
    "SitePermission",
    "SitePermissionAction",
    "SitePermissionManager",
    "SitePermissionRole",
    "enumerate_users",
    "generate_password",
    "resolve_user_id",
]
