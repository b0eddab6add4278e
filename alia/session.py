"""
Session and plan state machine.

One SessionMachine per browser client. The auth_state_changed signal is the
only thing that moves a client between authenticated and unauthenticated;
everything else (upgrade prompt, payment return, the submission flow) runs
through the machine's own transition methods. The Session value itself is
never mutated, only replaced.
"""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from blinker import Namespace

from alia.domain import ExamImage, Identity, ProfileSnapshot
from alia.flow import (
    AnalyzingState,
    ErrorState,
    ExamSubmissionFlow,
    FlowState,
    PatientForm,
    ResultState,
    UpgradeRequiredState,
)

logger = logging.getLogger(__name__)

auth_signals = Namespace()

# sender: client id; kwargs: identity (Identity | None), profile (ProfileSnapshot | None)
auth_state_changed = auth_signals.signal("auth-state-changed")

PAYMENT_MARKERS = ("success", "cancelled")


class Screen(enum.Enum):
    LOADING = "loading"
    LOGIN = "unauthenticated"
    FORM = "authenticated-form"
    ANALYZING = "authenticated-analyzing"
    RESULT = "authenticated-result"
    ERROR = "authenticated-error"
    UPGRADE = "upgrade-prompt"


@dataclass(frozen=True)
class Session:
    user: Optional[Identity]
    profile: Optional[ProfileSnapshot]
    authenticated: bool
    loading: bool

    @classmethod
    def initial(cls) -> "Session":
        return cls(user=None, profile=None, authenticated=False, loading=True)

    @classmethod
    def signed_out(cls) -> "Session":
        return cls(user=None, profile=None, authenticated=False, loading=False)

    @classmethod
    def signed_in(cls, user: Identity, profile: ProfileSnapshot) -> "Session":
        return cls(user=user, profile=profile, authenticated=True, loading=False)


class NotAuthenticated(Exception):
    pass


class SessionMachine:
    def __init__(self, client_id: str, flow: ExamSubmissionFlow):
        self.client_id = client_id
        self.flow = flow
        self.session = Session.initial()
        self.upgrade_requested = False
        self._subscribed = False

    # ---- auth event stream ----

    def subscribe(self) -> None:
        if self._subscribed:
            return
        auth_state_changed.connect(self._on_auth_event, sender=self.client_id, weak=False)
        self._subscribed = True

    def teardown(self) -> None:
        if self._subscribed:
            auth_state_changed.disconnect(self._on_auth_event, sender=self.client_id)
            self._subscribed = False

    def _on_auth_event(self, sender, identity: Optional[Identity] = None, profile: Optional[ProfileSnapshot] = None, **kwargs) -> None:
        if identity is not None and profile is not None:
            switching_user = self.session.user is None or self.session.user.user_id != identity.user_id
            self.session = Session.signed_in(identity, profile)
            if switching_user:
                self._clear_local_state()
            logger.debug("Client %s signed in as user %s", self.client_id, identity.user_id)
        else:
            self.session = Session.signed_out()
            self._clear_local_state()
            logger.debug("Client %s signed out", self.client_id)

    def _clear_local_state(self) -> None:
        self.flow.reset()
        self.upgrade_requested = False

    # ---- derived screen ----

    @property
    def screen(self) -> Screen:
        if self.session.loading:
            return Screen.LOADING
        if not self.session.authenticated or self.session.profile is None:
            return Screen.LOGIN
        state = self.flow.state
        if self.upgrade_requested or isinstance(state, UpgradeRequiredState):
            return Screen.UPGRADE
        if isinstance(state, AnalyzingState):
            return Screen.ANALYZING
        if isinstance(state, ResultState):
            return Screen.RESULT
        if isinstance(state, ErrorState):
            return Screen.ERROR
        return Screen.FORM

    @property
    def current_analysis(self):
        state = self.flow.state
        return state.analysis if isinstance(state, ResultState) else None

    # ---- transitions ----

    def _require_auth(self) -> None:
        if not self.session.authenticated or self.session.profile is None:
            raise NotAuthenticated(self.client_id)

    def submit(self, form: PatientForm, image: Optional[ExamImage]) -> FlowState:
        self._require_auth()
        return self.flow.submit(self.session.profile, self.session.user.user_id, form, image)

    def new_analysis(self) -> None:
        self.flow.reset()

    def request_upgrade(self) -> None:
        self._require_auth()
        self.upgrade_requested = True

    def leave_upgrade(self, profile: Optional[ProfileSnapshot] = None) -> None:
        self.upgrade_requested = False
        self.flow.reset()
        if profile is not None and self.session.authenticated:
            self.session = Session.signed_in(self.session.user, profile)

    def consume_payment_marker(self, marker: Optional[str], fetch_profile: Callable[[int], Optional[ProfileSnapshot]]) -> bool:
        """Re-fetch the profile once after returning from checkout.

        Returns True when a marker was recognized; the caller is responsible
        for removing it from the URL.
        """
        if marker not in PAYMENT_MARKERS:
            return False
        if not self.session.authenticated:
            return True
        profile = fetch_profile(self.session.user.user_id)
        if profile is None:
            logger.warning("Profile refresh after payment=%s returned nothing", marker)
            return True
        if profile.is_premium:
            self.leave_upgrade(profile)
        else:
            self.session = Session.signed_in(self.session.user, profile)
        return True


class SessionRegistry:
    """Per-application store of session machines, keyed by client id."""

    def __init__(self, flow_factory: Callable[[], ExamSubmissionFlow]):
        self._flow_factory = flow_factory
        self._machines: Dict[str, SessionMachine] = {}
        self._lock = threading.Lock()

    def get(self, client_id: str) -> Optional[SessionMachine]:
        with self._lock:
            return self._machines.get(client_id)

    def get_or_create(self, client_id: str):
        """Return (machine, created)."""
        with self._lock:
            machine = self._machines.get(client_id)
            if machine is not None:
                return machine, False
            machine = SessionMachine(client_id, self._flow_factory())
            machine.subscribe()
            self._machines[client_id] = machine
            return machine, True

    def detached(self) -> SessionMachine:
        """Signed-out machine that is neither stored nor subscribed."""
        machine = SessionMachine('', self._flow_factory())
        machine.session = Session.signed_out()
        return machine

    def discard(self, client_id: str) -> None:
        with self._lock:
            machine = self._machines.pop(client_id, None)
        if machine is not None:
            machine.teardown()

    def __len__(self):
        with self._lock:
            return len(self._machines)
