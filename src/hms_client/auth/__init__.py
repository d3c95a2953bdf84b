"""
Session and guest-access module for the HMS front-ends.

Provides token storage, the session state machine with silent refresh,
an authenticated HTTP client and the guest OTP flow.
"""

from .models import UserProfile, TokenPair, LoginResponse, RefreshResponse, Session
from .storage import TokenStore, MemoryStorage, FileStorage
from .jwt_claims import decode_without_verification, is_token_expired, token_expiry
from .transport import AuthMode, Request, Response, Transport, AiohttpTransport
from .session import SessionController, AuthState
from .http_client import AuthenticatedHttpClient
from .guest_access import (
    GuestAccessResolver,
    ResourceKind,
    ResourceRef,
    ResourceSpec,
    RESOURCE_SPECS,
    PendingAction,
    OtpState,
    AccessMode,
    AccessDecision,
    Outcome,
    OutcomeKind,
)
from .errors import (
    HmsClientError,
    CredentialError,
    ValidationError,
    AuthorizationError,
    NotFoundError,
    TransientError,
    error_for_status,
    user_message,
)
from .permissions import (
    AppKind,
    Capability,
    NavItem,
    NAVIGATION,
    Role,
    ROLE_CAPABILITIES,
    PermissionChecker,
    admission_error,
    check_capability,
    visible_menu,
)

__all__ = [
    # Models and storage
    "UserProfile",
    "TokenPair",
    "LoginResponse",
    "RefreshResponse",
    "Session",
    "TokenStore",
    "MemoryStorage",
    "FileStorage",
    # Token inspection
    "decode_without_verification",
    "is_token_expired",
    "token_expiry",
    # Transport and session
    "AuthMode",
    "Request",
    "Response",
    "Transport",
    "AiohttpTransport",
    "SessionController",
    "AuthState",
    "AuthenticatedHttpClient",
    # Guest access
    "GuestAccessResolver",
    "ResourceKind",
    "ResourceRef",
    "ResourceSpec",
    "RESOURCE_SPECS",
    "PendingAction",
    "OtpState",
    "AccessMode",
    "AccessDecision",
    "Outcome",
    "OutcomeKind",
    # Errors
    "HmsClientError",
    "CredentialError",
    "ValidationError",
    "AuthorizationError",
    "NotFoundError",
    "TransientError",
    "error_for_status",
    "user_message",
    # Role policy
    "AppKind",
    "Capability",
    "NavItem",
    "NAVIGATION",
    "Role",
    "ROLE_CAPABILITIES",
    "PermissionChecker",
    "admission_error",
    "check_capability",
    "visible_menu",
]
