"""
Guest access to bookings, reviews and customer requests.

Resources created without an account can be acted on through the token
mailed to the guest. Viewing needs only that token; editing, cancelling or
deleting additionally needs a one-time passcode (OTP) sent to the guest's
email. GuestAccessResolver decides which path applies and runs the OTP
challenge:

    IDLE -> OTP_REQUESTED -> OTP_VERIFIED -> ACTION_CONFIRMED
    OTP_REQUESTED / OTP_VERIFIED -> IDLE on dismiss()

A failed verification keeps the challenge open; a failed OTP request leaves
the resolver idle.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

from loguru import logger

from .errors import AuthorizationError, CredentialError, HmsClientError, user_message
from .http_client import AuthenticatedHttpClient
from .permissions import Capability, Role, check_capability
from .session import SessionController
from .transport import AuthMode, Request


OTP_PATTERN = re.compile(r"^\d{6}$")
LOGIN_ROUTE = "/login"


class PendingAction(str, Enum):
    """Mutating action waiting on access to be granted."""
    EDIT = "edit"
    CANCEL = "cancel"
    DELETE = "delete"


class OtpState(str, Enum):
    IDLE = "idle"
    OTP_REQUESTED = "otp_requested"
    OTP_VERIFIED = "otp_verified"
    ACTION_CONFIRMED = "action_confirmed"


class AccessMode(str, Enum):
    """Outcome of the access decision for one action."""
    OWNER = "owner"             # Authenticated owner, bearer token
    STAFF = "staff"             # Staff viewing with the matching capability
    GUEST = "guest"             # Guest viewing with the mailed token
    GUEST_OTP = "guest_otp"     # Guest mutation, OTP challenge required
    DENIED = "denied"


class ResourceKind(str, Enum):
    BOOKING = "booking"
    FEEDBACK = "feedback"
    HOUSEKEEPING_REQUEST = "housekeeping_request"
    SERVICE_REQUEST = "service_request"


@dataclass(frozen=True)
class ResourceSpec:
    """
    Routes and endpoints of one guest-capable resource type.

    Attributes:
        api_path: REST collection path
        noun: Name used in user-facing messages
        edit_route: Front-end edit page ({id} placeholder)
        detail_route: Front-end detail page ({id} placeholder)
        list_route: Front-end list page
        destructive_action: CANCEL or DELETE, whichever the resource supports
        view_capability: Staff capability that allows viewing any instance
    """
    api_path: str
    noun: str
    edit_route: str
    detail_route: str
    list_route: str
    destructive_action: PendingAction
    view_capability: Capability


RESOURCE_SPECS = {
    ResourceKind.BOOKING: ResourceSpec(
        api_path="/api/bookings",
        noun="booking",
        edit_route="/booking/{id}/edit",
        detail_route="/booking/{id}",
        list_route="/my-booking",
        destructive_action=PendingAction.CANCEL,
        view_capability=Capability.BOOKINGS,
    ),
    ResourceKind.FEEDBACK: ResourceSpec(
        api_path="/api/feedback",
        noun="review",
        edit_route="/reviews/edit/{id}",
        detail_route="/reviews/{id}",
        list_route="/reviews",
        destructive_action=PendingAction.DELETE,
        view_capability=Capability.FEEDBACK,
    ),
    ResourceKind.HOUSEKEEPING_REQUEST: ResourceSpec(
        api_path="/api/housekeeping-requests",
        noun="housekeeping request",
        edit_route="/housekeeping-requests/edit/{id}",
        detail_route="/housekeeping-requests/{id}",
        list_route="/housekeeping-requests",
        destructive_action=PendingAction.CANCEL,
        view_capability=Capability.HOUSEKEEPING_REQUESTS,
    ),
    ResourceKind.SERVICE_REQUEST: ResourceSpec(
        api_path="/api/service-requests",
        noun="service request",
        edit_route="/service-requests/edit/{id}",
        detail_route="/service-requests/{id}",
        list_route="/service-requests",
        destructive_action=PendingAction.CANCEL,
        view_capability=Capability.SERVICE_REQUESTS,
    ),
}


@dataclass
class ResourceRef:
    """
    One resource instance and its ownership fields.

    Attributes:
        kind: Resource type
        resource_id: Backend id
        customer_id: Owning customer, None for guest-created resources
        guest_email: Email of the guest who created it
    """
    kind: ResourceKind
    resource_id: Any
    customer_id: Optional[Any] = None
    guest_email: Optional[str] = None

    @property
    def is_guest_owned(self) -> bool:
        return self.customer_id is None and bool(self.guest_email)

    def update_from_payload(self, payload: Any) -> None:
        """Read customerId/guestEmail from a fetched resource body."""
        if not isinstance(payload, Mapping):
            return
        # Booking details arrive as {"booking": {...}, "rooms": [...], ...}
        body = payload.get("booking") if isinstance(payload.get("booking"), Mapping) else payload
        self.customer_id = body.get("customerId")
        self.guest_email = body.get("guestEmail")


@dataclass
class AccessDecision:
    mode: AccessMode
    message: Optional[str] = None
    redirect: Optional[str] = None

    @property
    def direct(self) -> bool:
        return self.mode in (AccessMode.OWNER, AccessMode.STAFF, AccessMode.GUEST)


class OutcomeKind(str, Enum):
    NAVIGATE = "navigate"       # Go to `path`
    CONFIRM = "confirm"         # Show the cancel/delete confirmation dialog
    OTP_PROMPT = "otp_prompt"   # Show the OTP entry form
    BLOCKED = "blocked"         # Refused; `path` is the login page when set
    ERROR = "error"             # Show `message`; state unchanged


@dataclass
class Outcome:
    """What the UI should do next."""
    kind: OutcomeKind
    action: Optional[PendingAction] = None
    path: Optional[str] = None
    message: Optional[str] = None


class GuestAccessResolver:
    """
    Access decisions and OTP orchestration for one resource instance.

    Keep one instance for the whole flow (detail page, OTP entry, edit page)
    so the verified state and pending action carry across navigation.
    """

    def __init__(
        self,
        session: SessionController,
        client: AuthenticatedHttpClient,
        ref: ResourceRef,
        guest_token: Optional[str] = None,
    ):
        """
        Args:
            session: SessionController for identity
            client: AuthenticatedHttpClient for all requests
            ref: Resource being acted on
            guest_token: Token from the mailed link; falls back to the cached one
        """
        self.session = session
        self.client = client
        self.ref = ref
        self.spec = RESOURCE_SPECS[ref.kind]

        if guest_token:
            session.store.set_guest_token(guest_token)
        self.guest_token = guest_token or session.store.get_guest_token()

        self.state = OtpState.IDLE
        self.pending_action: Optional[PendingAction] = None
        self.submitting = False
        self._direct = False

    # Paths

    def _route(self, template: str) -> str:
        return template.replace("{id}", str(self.ref.resource_id))

    def _api(self, suffix: str = "") -> str:
        return f"{self.spec.api_path}/{self.ref.resource_id}{suffix}"

    def _with_token(self, path: str) -> str:
        if self._direct or not self.guest_token:
            return path
        return f"{path}?{urlencode({'token': self.guest_token})}"

    # Decision

    def decide(self, action: Optional[PendingAction] = None) -> AccessDecision:
        """
        Decide how the caller may perform `action` (None means viewing).

        Rules, in order: the authenticated owner acts directly and staff with
        the view capability may view; a guest-created resource with a guest
        token needs an OTP for mutations; everything else is refused.
        """
        user = self.session.user if self.session.is_authenticated else None
        verb = action.value if action else "view"
        noun = self.spec.noun

        if user is not None:
            if self.ref.customer_id is not None and str(user.id) == str(self.ref.customer_id):
                return AccessDecision(AccessMode.OWNER)
            if (
                action is None
                and user.role != Role.CUSTOMER.value
                and check_capability(user.role, self.spec.view_capability)
            ):
                return AccessDecision(AccessMode.STAFF)

        if self.ref.is_guest_owned and self.guest_token:
            if action is None:
                return AccessDecision(AccessMode.GUEST)
            return AccessDecision(AccessMode.GUEST_OTP)

        if user is not None:
            return AccessDecision(
                AccessMode.DENIED,
                message=AuthorizationError(f"You are not allowed to {verb} this {noun}.").message,
            )
        return AccessDecision(
            AccessMode.DENIED,
            message=f"Please log in or use the link from your email to {verb} this {noun}.",
            redirect=LOGIN_ROUTE,
        )

    def _request_mode(self) -> AuthMode:
        if self._direct:
            return AuthMode.BEARER
        return AuthMode.GUEST

    # Resource

    async def fetch(self) -> Any:
        """
        Load the resource and record its ownership fields.

        Authenticated callers use their bearer token, anonymous callers the
        guest token; never both.

        Raises:
            CredentialError: Neither a session nor a guest token is available
            HmsClientError: The backend refused the request
        """
        if self.session.is_authenticated:
            mode = AuthMode.BEARER
        elif self.guest_token:
            mode = AuthMode.GUEST
        else:
            raise CredentialError(
                f"Please log in or use the link from your email to view this {self.spec.noun}."
            )

        body = await self.client.request_json(
            Request("GET", self._api(), auth=mode, guest_token=self.guest_token)
        )
        if body is None:
            raise HmsClientError(f"No {self.spec.noun} data in response.")
        self.ref.update_from_payload(body)
        return body

    # OTP endpoints

    def _guest_request(self, method: str, suffix: str, **params: str) -> Request:
        return Request(
            method,
            self._api(suffix),
            params=params,
            auth=AuthMode.GUEST,
            guest_token=self.guest_token,
        )

    async def request_otp(self) -> str:
        """Ask the backend to email a 6-digit code. Returns the backend's message."""
        body = await self.client.request_json(self._guest_request("POST", "/request-otp"))
        return body if isinstance(body, str) and body else "OTP sent to your email."

    async def verify_otp(self, code: str) -> bool:
        """
        Submit a code, then confirm through otp-status.

        Returns:
            True only when the backend reports the status as exactly true
        """
        await self.client.request_json(self._guest_request("POST", "/verify-otp", otp=code))
        status = await self.client.request_json(self._guest_request("GET", "/otp-status"))
        return status is True

    async def otp_status(self) -> bool:
        status = await self.client.request_json(self._guest_request("GET", "/otp-status"))
        return status is True

    # Flow

    def _follow_up(self, action: PendingAction) -> Outcome:
        if action == PendingAction.EDIT:
            return Outcome(OutcomeKind.NAVIGATE, action=action, path=self._route(self.spec.edit_route))
        return Outcome(OutcomeKind.CONFIRM, action=action)

    def _check_supported(self, action: PendingAction) -> None:
        if action not in (PendingAction.EDIT, self.spec.destructive_action):
            raise ValueError(f"{action.value} is not supported for {self.spec.noun}")

    async def begin(self, action: PendingAction) -> Outcome:
        """
        Start an edit, cancel or delete.

        Returns:
            NAVIGATE/CONFIRM for direct access, OTP_PROMPT when a code was
            sent, BLOCKED when refused, ERROR when the code could not be sent
        """
        self._check_supported(action)
        decision = self.decide(action)

        if decision.direct:
            self._direct = True
            self.pending_action = action
            return self._follow_up(action)

        if decision.mode == AccessMode.DENIED:
            logger.info(f"{action.value} on {self.spec.noun} {self.ref.resource_id} refused")
            return Outcome(OutcomeKind.BLOCKED, action=action, path=decision.redirect,
                           message=decision.message)

        self._direct = False
        try:
            message = await self.request_otp()
        except HmsClientError as e:
            logger.warning(f"Request OTP error for {action.value}: {e}")
            self.state = OtpState.IDLE
            self.pending_action = None
            return Outcome(OutcomeKind.ERROR, action=action,
                           message=_backend_message(e, "Could not send the OTP. Please try again."))

        self.state = OtpState.OTP_REQUESTED
        self.pending_action = action
        logger.info(f"OTP requested for {action.value} on {self.spec.noun} {self.ref.resource_id}")
        return Outcome(OutcomeKind.OTP_PROMPT, action=action, message=message)

    async def submit_otp(self, code: str) -> Outcome:
        """
        Verify the code entered by the guest.

        On success the pending action continues (edit navigation or the
        confirmation dialog). On failure the entry form stays open.
        """
        if self.state != OtpState.OTP_REQUESTED or self.pending_action is None:
            return Outcome(OutcomeKind.ERROR, message="No OTP verification is in progress.")

        code = (code or "").strip()
        if not OTP_PATTERN.match(code):
            return Outcome(OutcomeKind.ERROR, action=self.pending_action,
                           message="Please enter a 6-digit OTP.")

        invalid = "Invalid OTP. Please try again."
        try:
            verified = await self.verify_otp(code)
        except HmsClientError as e:
            logger.warning(f"Verify OTP error for {self.pending_action.value}: {e}")
            return Outcome(OutcomeKind.ERROR, action=self.pending_action,
                           message=_backend_message(e, invalid))

        if not verified:
            return Outcome(OutcomeKind.ERROR, action=self.pending_action, message=invalid)

        self.state = OtpState.OTP_VERIFIED
        logger.info(f"OTP verified for {self.spec.noun} {self.ref.resource_id}")
        return self._follow_up(self.pending_action)

    async def restore_verification(self, action: PendingAction) -> bool:
        """
        Resume a verified flow after a reload, using the backend's otp-status.

        Returns:
            True if the backend still reports this resource+token as verified
        """
        self._check_supported(action)
        if not self.ref.is_guest_owned or not self.guest_token:
            return False
        try:
            verified = await self.otp_status()
        except HmsClientError as e:
            logger.warning(f"OTP status check failed: {e}")
            return False
        if verified:
            self._direct = False
            self.state = OtpState.OTP_VERIFIED
            self.pending_action = action
        return verified

    def dismiss(self) -> None:
        """Close the OTP form or the confirmation dialog."""
        if self.state in (OtpState.OTP_REQUESTED, OtpState.OTP_VERIFIED):
            self.state = OtpState.IDLE
        self.pending_action = None
        self._direct = False

    def _authorized_for(self, action: PendingAction) -> Optional[Outcome]:
        if self.pending_action != action:
            return Outcome(OutcomeKind.ERROR, action=action,
                           message=f"No {action.value} is in progress.")
        if not self._direct and self.state != OtpState.OTP_VERIFIED:
            return Outcome(OutcomeKind.BLOCKED, action=action,
                           message="Please verify the OTP sent to your email first.")
        if self.submitting:
            return Outcome(OutcomeKind.ERROR, action=action,
                           message="A request is already in progress.")
        return None

    async def _mutate(self, request: Request, action: PendingAction, path: str) -> Outcome:
        self.submitting = True
        try:
            await self.client.request_json(request)
        except HmsClientError as e:
            logger.warning(f"{action.value} on {self.spec.noun} {self.ref.resource_id} failed: {e}")
            if isinstance(e, CredentialError) and self._direct:
                return Outcome(OutcomeKind.BLOCKED, action=action, path=LOGIN_ROUTE,
                               message=user_message(e))
            return Outcome(OutcomeKind.ERROR, action=action, message=user_message(e))
        finally:
            self.submitting = False

        self.state = OtpState.ACTION_CONFIRMED
        logger.success(f"{action.value} on {self.spec.noun} {self.ref.resource_id} done")
        return Outcome(OutcomeKind.NAVIGATE, action=action, path=path)

    async def confirm(self) -> Outcome:
        """Carry out the confirmed cancel/delete."""
        action = self.spec.destructive_action
        refused = self._authorized_for(action)
        if refused:
            return refused

        mode = self._request_mode()
        if self.ref.kind == ResourceKind.BOOKING:
            request = Request(
                "PUT",
                self._api("/change-status"),
                data="CANCELLED",
                headers={"Content-Type": "application/json"},
                auth=mode,
                guest_token=self.guest_token,
            )
        else:
            request = Request("DELETE", self._api(), auth=mode, guest_token=self.guest_token)

        if action == PendingAction.DELETE:
            path = self.spec.list_route
        else:
            path = self._with_token(self._route(self.spec.detail_route))
        return await self._mutate(request, action, path)

    async def submit_edit(self, changes: Mapping[str, Any]) -> Outcome:
        """Save the edit form."""
        refused = self._authorized_for(PendingAction.EDIT)
        if refused:
            return refused

        request = Request(
            "PUT",
            self._api(),
            json=dict(changes),
            auth=self._request_mode(),
            guest_token=self.guest_token,
        )
        path = self._with_token(self._route(self.spec.detail_route))
        return await self._mutate(request, PendingAction.EDIT, path)


def _backend_message(error: HmsClientError, fallback: str) -> str:
    # Prefer the backend's own wording when it sent one
    if error.message and error.message != type(error).default_message:
        return error.message
    return fallback
