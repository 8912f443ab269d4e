"""服务层能力导出集合。"""

from pac_api.services.access_codes import AccessCodeService, validate_window
from pac_api.services.access_scope import AccessScopeResolver, HasOwner
from pac_api.services.audit import AccessLogFilters, AuditLedger, ClientInfo, client_ip, normalize_page
from pac_api.services.authorization import (
    ROLE_OPERATIONS,
    Actor,
    AuthorizationGuard,
    CredentialOperation,
    role_allows,
)
from pac_api.services.intercom_access import IntercomAccessService
from pac_api.services.pin_hashing import hash_secret, verify_secret
from pac_api.services.results import AccessError, ErrorKind, Result
from pac_api.services.verification import VerificationEngine, VerificationOutcome

__all__ = [
    "AccessCodeService",
    "AccessError",
    "AccessLogFilters",
    "AccessScopeResolver",
    "Actor",
    "AuditLedger",
    "AuthorizationGuard",
    "ClientInfo",
    "CredentialOperation",
    "ErrorKind",
    "HasOwner",
    "IntercomAccessService",
    "ROLE_OPERATIONS",
    "Result",
    "VerificationEngine",
    "VerificationOutcome",
    "client_ip",
    "hash_secret",
    "normalize_page",
    "role_allows",
    "validate_window",
    "verify_secret",
]
