"""
Signaling state machine for a single two-party session attempt.

The machine owns the one live transport session, drives it through the manual
offer/answer exchange and mirrors connection health for the display layer::

    IDLE -> DESCRIPTION_PENDING -> NEGOTIATING -> CONNECTED        (offerer)
    IDLE -> AWAITING_REMOTE_DESCRIPTION -> CONNECTED               (answerer)
    NEGOTIATING | AWAITING_REMOTE_DESCRIPTION | CONNECTED -> LOST   (terminal)

Every user action and every substrate event mutates state only between
awaits, so each one is an atomic step on the event loop.  Work that suspends
(capture, offer/answer creation, applying descriptions) re-checks the attempt
counter when it resumes; a reset in the meantime makes the late result stale
and it is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, NoReturn, Optional, Sequence, Union

from .config import IceServer, LinkConfig
from .errors import (
    ConnectivityLost,
    DeviceUnavailable,
    InvalidState,
    MachineClosed,
    MalformedDescription,
    NegotiationRejected,
    SignalingError,
)
from .roles import Role, RoleSelector
from .rtc.description import SessionDescription
from .rtc.events import (
    CandidateDiscovered,
    Connectivity,
    ConnectivityChanged,
    RemoteTrackArrived,
    TransportEvent,
)
from .rtc.media import CaptureDevice, MediaStream
from .rtc.transport import SessionHandle, TransportSubstrate

LOG = logging.getLogger(__name__)

STATUS_SELECT_ROLE = "Select your role to begin."
STATUS_INITIALISING = "Initializing camera..."
STATUS_READY = "Ready."
STATUS_DEVICE_ERROR = "Error: Could not access camera or microphone. Please check permissions."
STATUS_CREATING_OFFER = "Creating offer..."
STATUS_OFFER_READY = "Offer created. Share it with the viewer."
STATUS_CREATING_ANSWER = "Creating answer..."
STATUS_ANSWER_READY = "Answer created. Share it back with the broadcaster."
STATUS_BAD_OFFER = "Error: Invalid offer SDP provided. Please check the value."
STATUS_BAD_ANSWER = "Error: Invalid answer SDP provided. Please check the value."
STATUS_CONNECTING = "Connecting..."
STATUS_CONNECTED = "Connection established successfully!"
STATUS_LOST = "Connection lost. Please try again."


class SignalingState(str, Enum):
    IDLE = "idle"
    DESCRIPTION_PENDING = "description_pending"
    AWAITING_REMOTE_DESCRIPTION = "awaiting_remote_description"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    LOST = "lost"


_PROGRESS = {
    SignalingState.IDLE: 0,
    SignalingState.DESCRIPTION_PENDING: 1,
    SignalingState.AWAITING_REMOTE_DESCRIPTION: 2,
    SignalingState.NEGOTIATING: 3,
    SignalingState.CONNECTED: 4,
}


@dataclass
class Session:
    """The transport session of the current attempt."""

    handle: SessionHandle
    status: SignalingState = SignalingState.IDLE
    local_description: Optional[SessionDescription] = None
    remote_description: Optional[SessionDescription] = None
    applying_remote: bool = False

    @property
    def id(self) -> str:
        return self.handle.id


@dataclass(frozen=True, slots=True)
class SignalingSnapshot:
    """
    Immutable view of the machine handed to the display layer.
    """

    attempt: int
    role: Role
    state: SignalingState
    status: str
    error: Optional[str]
    offer: str
    answer: str
    pending_offer: str
    pending_answer: str
    local_stream: Optional[dict]
    remote_stream: Optional[dict]
    closed: bool = False

    @property
    def connected(self) -> bool:
        return self.state is SignalingState.CONNECTED

    def to_dict(self) -> dict:
        return {
            "attempt": int(self.attempt),
            "role": self.role.value,
            "roleLabel": self.role.label,
            "state": self.state.value,
            "status": self.status,
            "error": self.error,
            "offer": self.offer,
            "answer": self.answer,
            "pendingOffer": self.pending_offer,
            "pendingAnswer": self.pending_answer,
            "localStream": self.local_stream,
            "remoteStream": self.remote_stream,
            "connected": self.connected,
            "closed": bool(self.closed),
        }


SnapshotObserver = Callable[[SignalingSnapshot], None]


class SignalingMachine:
    """
    Drives one offer/answer exchange between this instance and its peer.
    """

    def __init__(
        self,
        capture: CaptureDevice,
        transport: TransportSubstrate,
        *,
        ice_servers: Optional[Sequence[IceServer]] = None,
    ) -> None:
        self.selector = RoleSelector(capture)
        self.transport = transport
        self.ice_servers = list(ice_servers) if ice_servers is not None else LinkConfig().ice_servers
        self.inbox: "asyncio.Queue[TransportEvent]" = asyncio.Queue()

        self._session: Optional[Session] = None
        self._remote_stream: Optional[MediaStream] = None
        self._offer_blob = ""
        self._answer_blob = ""
        self._pending_offer = ""
        self._pending_answer = ""
        self._status = STATUS_SELECT_ROLE
        self._error: Optional[str] = None
        self._attempt = 0
        self._closed = False
        self._consumer: Optional[asyncio.Task] = None

        self._observer_counter = 0
        self._observers: Dict[int, SnapshotObserver] = {}

    # ------------------------------------------------------------------ properties

    @property
    def role(self) -> Role:
        return self.selector.role

    @property
    def state(self) -> SignalingState:
        if self._session is None:
            return SignalingState.IDLE
        return self._session.status

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def local_stream(self) -> Optional[MediaStream]:
        return self.selector.local_stream

    @property
    def remote_stream(self) -> Optional[MediaStream]:
        return self._remote_stream

    @property
    def status(self) -> str:
        return self._status

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------ observers

    def snapshot(self) -> SignalingSnapshot:
        local = self.selector.local_stream
        remote = self._remote_stream
        return SignalingSnapshot(
            attempt=self._attempt,
            role=self.selector.role,
            state=self.state,
            status=self._status,
            error=self._error,
            offer=self._offer_blob,
            answer=self._answer_blob,
            pending_offer=self._pending_offer,
            pending_answer=self._pending_answer,
            local_stream=local.to_dict() if local is not None else None,
            remote_stream=remote.to_dict() if remote is not None else None,
            closed=self._closed,
        )

    def subscribe(self, callback: SnapshotObserver) -> int:
        if not callable(callback):
            raise TypeError("callback must be callable")
        self._observer_counter += 1
        token = self._observer_counter
        self._observers[token] = callback
        try:
            callback(self.snapshot())
        except Exception:  # pragma: no cover - observer failures never reach the machine
            LOG.exception("Signaling observer %s failed during initial snapshot.", token)
        return token

    def unsubscribe(self, token: int) -> None:
        self._observers.pop(token, None)

    def _notify(self) -> None:
        if not self._observers:
            return
        snapshot = self.snapshot()
        for token, callback in list(self._observers.items()):
            try:
                callback(snapshot)
            except Exception:  # pragma: no cover - observer failures never reach the machine
                LOG.exception("Signaling observer %s failed.", token)

    # ------------------------------------------------------------------ helpers

    def _ensure_open(self) -> None:
        if self._closed:
            raise MachineClosed("Signaling machine is closed")

    def _set_status(self, status: str, *, error: Optional[str] = None) -> None:
        self._status = status
        self._error = error
        self._notify()

    def _reject(self, exc: SignalingError, status: Optional[str] = None) -> NoReturn:
        if isinstance(exc, InvalidState) and self.state is SignalingState.CONNECTED:
            # A live call keeps its status text; only the caller sees the refusal.
            LOG.info("Rejected while connected: %s", exc)
            raise exc
        self._status = status or str(exc)
        self._error = exc.kind
        self._notify()
        raise exc

    def _is_current(self, attempt: int, session: Optional[Session] = None) -> bool:
        if self._closed or attempt != self._attempt:
            return False
        return session is None or self._session is session

    def _advance(self, session: Session, target: SignalingState) -> None:
        if session.status is SignalingState.LOST:
            return
        if _PROGRESS[target] > _PROGRESS[session.status]:
            LOG.info("Signaling %s -> %s", session.status.value, target.value)
            session.status = target

    def _open_session(self, stream: MediaStream) -> Session:
        handle = self.transport.create_session(self.ice_servers, self.inbox.put_nowait)
        for track in stream.tracks:
            self.transport.attach_track(handle, track)
        session = Session(handle=handle)
        self._session = session
        LOG.info("Opened transport session %s with %d local track(s)", session.id[:8], len(stream.tracks))
        return session

    async def _close_handle(self, session: Session) -> None:
        try:
            await self.transport.close(session.handle)
        except Exception:  # pragma: no cover - teardown continues regardless
            LOG.exception("Failed to close transport session %s", session.id[:8])
        else:
            LOG.info("Closed transport session %s", session.id[:8])

    async def _drop_session(self, session: Session) -> None:
        if self._session is session:
            self._session = None
        await self._close_handle(session)

    def _publish(self, description: SessionDescription) -> None:
        blob = description.to_blob()
        if description.type == "offer":
            self._offer_blob = blob
        else:
            self._answer_blob = blob

    def _committed_description(self, session: Session, fallback: SessionDescription) -> SessionDescription:
        # The substrate's copy carries every candidate gathered so far.
        return self.transport.local_description(session.handle) or fallback

    # ------------------------------------------------------------------ role selection

    async def select_role(self, role: Union[Role, str]) -> None:
        """
        Fix the role for this attempt and acquire the local stream.

        Raises :class:`DeviceUnavailable` when the camera or microphone cannot
        be opened; the role then stays unset.
        """

        self._ensure_open()
        try:
            target = Role.parse(role)
        except InvalidState as exc:
            self._reject(exc)
        if self.selector.is_set or self.selector.is_acquiring:
            self._reject(InvalidState("A role is already selected; reset to choose again"))

        attempt = self._attempt
        self._set_status(STATUS_INITIALISING)
        try:
            stream = await self.selector.select(target)
        except DeviceUnavailable as exc:
            if not self._is_current(attempt):
                LOG.debug("Ignoring capture failure from a reset attempt: %s", exc)
                return
            LOG.warning("Capture failed: %s", exc)
            self._reject(exc, STATUS_DEVICE_ERROR)
        if stream is None or not self._is_current(attempt):
            return
        self._set_status(STATUS_READY)

    # ------------------------------------------------------------------ offerer

    async def generate_offer(self) -> Optional[str]:
        """
        Create the session and publish the local offer blob.

        Returns the blob, or ``None`` when a reset overtook the call.
        """

        self._ensure_open()
        if self.selector.role is not Role.OFFERER:
            self._reject(InvalidState("Only the broadcaster generates an offer"))
        stream = self.selector.local_stream
        if stream is None:
            self._reject(InvalidState("Cannot create offer: local stream is not available."))
        if self._session is not None:
            self._reject(InvalidState("Offer already generated; reset to start over"))

        attempt = self._attempt
        session = self._open_session(stream)
        self._set_status(STATUS_CREATING_OFFER)
        try:
            offer = await self.transport.create_local_offer(session.handle)
            if not self._is_current(attempt, session):
                LOG.debug("Discarding offer for a reset attempt")
                return None
            await self.transport.set_local_description(session.handle, offer)
        except NegotiationRejected as exc:
            if not self._is_current(attempt, session):
                return None
            await self._drop_session(session)
            self._reject(exc)
        except Exception:
            if self._is_current(attempt, session):
                await self._drop_session(session)
            raise
        if not self._is_current(attempt, session):
            LOG.debug("Discarding offer for a reset attempt")
            return None

        session.local_description = self._committed_description(session, offer)
        self._advance(session, SignalingState.DESCRIPTION_PENDING)
        self._publish(session.local_description)
        self._set_status(STATUS_OFFER_READY)
        return self._offer_blob

    async def apply_remote_answer(self, blob: Optional[str] = None) -> None:
        """
        Apply the viewer's answer; ``blob`` defaults to the pending answer slot.

        Connectivity is reported later through the event inbox.
        """

        self._ensure_open()
        if self.selector.role is not Role.OFFERER:
            self._reject(InvalidState("Only the broadcaster applies an answer"))
        session = self._session
        if session is None or session.local_description is None:
            self._reject(NegotiationRejected("Cannot connect: generate an offer before applying an answer"))
        if session.status is SignalingState.LOST:
            self._reject(InvalidState("Connection lost; reset to start over"))
        if session.remote_description is not None or session.applying_remote:
            self._reject(InvalidState("Answer already applied"))

        text = self._pending_answer if blob is None else blob
        try:
            answer = SessionDescription.from_blob(text, expected="answer")
        except MalformedDescription as exc:
            LOG.info("Rejected pasted answer: %s", exc)
            self._reject(exc, STATUS_BAD_ANSWER)

        attempt = self._attempt
        session.applying_remote = True
        self._set_status(STATUS_CONNECTING)
        try:
            await self.transport.set_remote_description(session.handle, answer)
        except NegotiationRejected as exc:
            if not self._is_current(attempt, session):
                return
            session.applying_remote = False
            self._reject(exc)
        except Exception:
            session.applying_remote = False
            raise
        if not self._is_current(attempt, session):
            LOG.debug("Discarding answer for a reset attempt")
            return

        session.applying_remote = False
        session.remote_description = answer
        self._pending_answer = ""
        self._advance(session, SignalingState.NEGOTIATING)
        self._notify()

    # ------------------------------------------------------------------ answerer

    async def apply_remote_offer(self, blob: Optional[str] = None) -> Optional[str]:
        """
        Apply the broadcaster's offer and publish the answer blob.

        ``blob`` defaults to the pending offer slot.  A malformed blob leaves
        no session behind; the user fixes the paste and calls again.
        """

        self._ensure_open()
        if self.selector.role is not Role.ANSWERER:
            self._reject(InvalidState("Only the viewer applies an offer"))
        stream = self.selector.local_stream
        if stream is None:
            self._reject(InvalidState("Cannot create answer: local stream is not available."))
        if self._session is not None:
            self._reject(InvalidState("Answer already generated; reset to start over"))

        text = self._pending_offer if blob is None else blob
        try:
            offer = SessionDescription.from_blob(text, expected="offer")
        except MalformedDescription as exc:
            LOG.info("Rejected pasted offer: %s", exc)
            self._reject(exc, STATUS_BAD_OFFER)

        attempt = self._attempt
        session = self._open_session(stream)
        self._set_status(STATUS_CREATING_ANSWER)
        try:
            await self.transport.set_remote_description(session.handle, offer)
            if not self._is_current(attempt, session):
                LOG.debug("Discarding offer application for a reset attempt")
                return None
            session.remote_description = offer
            answer = await self._generate_answer(session)
        except NegotiationRejected as exc:
            if not self._is_current(attempt, session):
                return None
            await self._drop_session(session)
            self._reject(exc)
        except Exception:
            if self._is_current(attempt, session):
                await self._drop_session(session)
            raise
        if answer is None or not self._is_current(attempt, session):
            LOG.debug("Discarding answer for a reset attempt")
            return None

        session.local_description = answer
        self._pending_offer = ""
        self._advance(session, SignalingState.AWAITING_REMOTE_DESCRIPTION)
        self._publish(answer)
        self._set_status(STATUS_ANSWER_READY)
        return self._answer_blob

    async def _generate_answer(self, session: Session) -> Optional[SessionDescription]:
        attempt = self._attempt
        answer = await self.transport.create_local_answer(session.handle)
        if not self._is_current(attempt, session):
            return None
        await self.transport.set_local_description(session.handle, answer)
        if not self._is_current(attempt, session):
            return None
        return self._committed_description(session, answer)

    # ------------------------------------------------------------------ paste slots

    def set_pending_offer(self, text: str) -> None:
        self._ensure_open()
        if self.selector.role is not Role.ANSWERER:
            raise InvalidState("Only the viewer pastes an offer")
        if self._session is not None:
            raise InvalidState("Offer already applied")
        self._pending_offer = str(text or "")
        self._notify()

    def set_pending_answer(self, text: str) -> None:
        self._ensure_open()
        if self.selector.role is not Role.OFFERER:
            raise InvalidState("Only the broadcaster pastes an answer")
        if self._session is not None and self._session.remote_description is not None:
            raise InvalidState("Answer already applied")
        self._pending_answer = str(text or "")
        self._notify()

    # ------------------------------------------------------------------ events

    def handle_event(self, event: TransportEvent) -> None:
        """Apply one substrate notification."""

        session = self._session
        if self._closed or session is None or event.session_id != session.id:
            LOG.debug("Dropping %s for inactive session %s", type(event).__name__, event.session_id[:8])
            return

        if isinstance(event, CandidateDiscovered):
            self._republish(session)
        elif isinstance(event, RemoteTrackArrived):
            self._record_remote_track(session, event)
        elif isinstance(event, ConnectivityChanged):
            self._apply_connectivity(session, event.state)
        else:  # pragma: no cover - typed inbox
            LOG.warning("Unknown transport event %r", event)

    def _republish(self, session: Session) -> None:
        if session.local_description is None:
            # The pending commit reads the substrate's latest copy itself.
            return
        current = self.transport.local_description(session.handle)
        if current is None or current == session.local_description:
            return
        session.local_description = current
        self._publish(current)
        LOG.debug("Republished local %s with new candidates", current.type)
        self._notify()

    def _record_remote_track(self, session: Session, event: RemoteTrackArrived) -> None:
        if session.status is SignalingState.LOST:
            return
        if self._remote_stream is None:
            self._remote_stream = MediaStream(id=event.stream_id) if event.stream_id else MediaStream()
        self._remote_stream.add_track(event.track)
        LOG.info("Remote %s track recorded", getattr(event.track, "kind", "unknown"))
        self._notify()

    def _apply_connectivity(self, session: Session, state: Connectivity) -> None:
        if session.status is SignalingState.LOST:
            LOG.debug("Ignoring %s after connection loss", state.value)
            return
        if state is Connectivity.CONNECTED:
            self._advance(session, SignalingState.CONNECTED)
            self._set_status(STATUS_CONNECTED)
        elif state in (Connectivity.FAILED, Connectivity.DISCONNECTED):
            LOG.warning("Transport reported %s; connection lost", state.value)
            session.status = SignalingState.LOST
            self._remote_stream = None
            self._set_status(STATUS_LOST, error=ConnectivityLost.kind)
        elif state is Connectivity.CONNECTING:
            if session.remote_description is not None and session.status is not SignalingState.CONNECTED:
                self._set_status(STATUS_CONNECTING)
        else:
            LOG.debug("Connection state %s needs no transition", state.value)

    async def run_events(self) -> None:
        """Consume the inbox until cancelled."""

        while True:
            event = await self.inbox.get()
            try:
                self.handle_event(event)
            except Exception:  # pragma: no cover - one bad event must not stop the inbox
                LOG.exception("Failed to apply %s", type(event).__name__)
            finally:
                self.inbox.task_done()

    def start(self) -> None:
        self._ensure_open()
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.get_running_loop().create_task(self.run_events())

    # ------------------------------------------------------------------ teardown

    def _is_idle(self) -> bool:
        return (
            self._session is None
            and not self.selector.is_set
            and not self.selector.is_acquiring
            and self._remote_stream is None
            and not (self._offer_blob or self._answer_blob or self._pending_offer or self._pending_answer)
        )

    async def _release(self) -> None:
        session, self._session = self._session, None
        self._attempt += 1
        self._remote_stream = None
        self._offer_blob = ""
        self._answer_blob = ""
        self._pending_offer = ""
        self._pending_answer = ""
        self._status = STATUS_SELECT_ROLE
        self._error = None
        self.selector.clear()
        self._notify()
        if session is not None:
            await self._close_handle(session)

    async def reset(self) -> None:
        """Tear the attempt down and return to role selection."""

        if self._closed:
            return
        if self._is_idle():
            if self._error is not None or self._status != STATUS_SELECT_ROLE:
                self._set_status(STATUS_SELECT_ROLE)
            return
        LOG.info("Resetting session attempt %d", self._attempt)
        await self._release()

    async def aclose(self) -> None:
        """Release everything exactly once; the machine is unusable afterwards."""

        if self._closed:
            return
        self._closed = True
        consumer, self._consumer = self._consumer, None
        if consumer is not None:
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
        if not self._is_idle():
            await self._release()
        self._observers.clear()

    async def __aenter__(self) -> "SignalingMachine":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = [
    "STATUS_CONNECTED",
    "STATUS_LOST",
    "STATUS_SELECT_ROLE",
    "Session",
    "SignalingMachine",
    "SignalingSnapshot",
    "SignalingState",
]
