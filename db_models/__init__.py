# Import models so they register on Base.metadata
from .user import User, FullRole, UserStatus
from .audit_log import AuditLog, AuditAction, AuditLevel
from .catalog_entry import CatalogEntry, EntryStatus
from .permission_request import PermissionRequest, RequestPriority, RequestStatus

__all__ = [
    "User",
    "FullRole",
    "UserStatus",
    "AuditLog",
    "AuditAction",
    "AuditLevel",
    "CatalogEntry",
    "EntryStatus",
    "PermissionRequest",
    "RequestPriority",
    "RequestStatus",
]
