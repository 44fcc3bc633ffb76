"""
Connection Controller - manual-signaling handshake state machine

Initiator (host):
    IDLE -> AWAITING_LOCAL_DESCRIPTION -> AWAITING_REMOTE_TOKEN
         -> NEGOTIATING -> OPEN
Responder (guest):
    IDLE -> NEGOTIATING -> OPEN

Tokens are produced and consumed here; a person carries them between the
two sides. OPEN is only ever entered on the transport's ChannelOpened event.
Errors move the controller to FAILED and nothing is retried: recovery is
reset() followed by a new handshake.
"""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

from pastelink.common import signaling
from pastelink.common.errors import (
    InvalidState,
    MalformedToken,
    PasteLinkError,
    TransportFailure,
)
from pastelink.common.signaling import DecodeError, SessionDescription
from pastelink.engine import ChannelEngine
from pastelink.events import (
    ChannelClosed,
    ChannelOpened,
    Event,
    LocalDescriptionReady,
    MessageReceived,
    TransportFailed,
)
from pastelink.transport.base import PeerTransport

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ConnectionState(Enum):
    """Handshake / connection state"""
    IDLE = "idle"
    AWAITING_LOCAL_DESCRIPTION = "awaiting_local_description"
    AWAITING_REMOTE_TOKEN = "awaiting_remote_token"
    NEGOTIATING = "negotiating"
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"


class Role(Enum):
    """Which side of the handshake this controller plays"""
    INITIATOR = "initiator"
    RESPONDER = "responder"


class ConnectionController:
    """
    Drives one session: handshake, channel lifecycle and reset.

    Usage (host):
        controller = ConnectionController(create_transport)
        offer = await controller.create_offer()        # give to guest
        await controller.finalize_with_answer(answer)  # pasted from guest
        await controller.wait_for(ConnectionState.OPEN)
        controller.engine.send_chat("hello")

    Usage (guest):
        answer = await controller.accept_offer_and_respond(offer)  # give to host
    """

    def __init__(
        self,
        transport_factory: Callable[[], PeerTransport],
        engine: Optional[ChannelEngine] = None,
        on_state_changed: Optional[Callable[[ConnectionState, ConnectionState], None]] = None,
        on_failure: Optional[Callable[[PasteLinkError], None]] = None
    ):
        """
        Args:
            transport_factory: Creates a fresh transport for each handshake
            engine: Channel engine to attach once open (a default one is created)
            on_state_changed: Called with (old, new) on every transition
            on_failure: Called with the error whenever the controller fails
        """
        self.transport_factory = transport_factory
        self.engine = engine or ChannelEngine()
        self.on_state_changed = on_state_changed
        self.on_failure = on_failure

        self.state = ConnectionState.IDLE
        self.role: Optional[Role] = None
        self.local_token: Optional[str] = None
        self.last_error: Optional[PasteLinkError] = None

        self._transport: Optional[PeerTransport] = None
        self._local_ready: Optional[asyncio.Future] = None
        self._waiters: List[Tuple[Tuple[ConnectionState, ...], asyncio.Future]] = []

    @property
    def transport(self) -> Optional[PeerTransport]:
        return self._transport

    # ========== State ==========

    def _set_state(self, new_state: ConnectionState):
        old_state = self.state
        if old_state == new_state:
            return
        self.state = new_state
        logger.info(f"Connection state: {old_state.value} -> {new_state.value}")

        for entry in list(self._waiters):
            states, future = entry
            if new_state in states:
                self._waiters.remove(entry)
                if not future.done():
                    future.set_result(new_state)

        if self.on_state_changed:
            self.on_state_changed(old_state, new_state)

    async def wait_for(self, *states: ConnectionState) -> ConnectionState:
        """Suspend until the controller enters one of `states`"""
        if self.state in states:
            return self.state
        future = asyncio.get_running_loop().create_future()
        self._waiters.append((states, future))
        try:
            return await future
        finally:
            self._waiters = [w for w in self._waiters if w[1] is not future]

    def _begin(self, role: Role, state: ConnectionState) -> PeerTransport:
        """Claim the controller for a new handshake (no suspension before this)"""
        if self.state != ConnectionState.IDLE:
            raise InvalidState(f"Cannot start a handshake while {self.state.value}; reset first")

        self.role = role
        self.last_error = None
        self._transport = self.transport_factory()
        transport = self._transport
        transport.set_listener(lambda event: self._on_transport_event(transport, event))
        self._set_state(state)
        return transport

    def _fail(self, error: PasteLinkError) -> PasteLinkError:
        self.last_error = error
        logger.error(f"Connection failed: {error}")
        if self._local_ready is not None and not self._local_ready.done():
            self._local_ready.set_exception(error)
        self._set_state(ConnectionState.FAILED)
        if self.on_failure:
            self.on_failure(error)
        return error

    async def _step(self, awaitable: Awaitable[T]) -> T:
        """Await a transport operation, turning its errors into TransportFailure"""
        try:
            return await awaitable
        except PasteLinkError:
            raise
        except Exception as e:
            raise TransportFailure(f"{type(e).__name__}: {e}") from e

    def _decode(self, token: str) -> SessionDescription:
        try:
            return signaling.decode(token)
        except DecodeError as e:
            raise MalformedToken(str(e)) from e

    async def _publish_local(self, transport: PeerTransport, description: SessionDescription) -> str:
        """Apply the local description and wait for its final (gathered) form"""
        ready = asyncio.get_running_loop().create_future()
        self._local_ready = ready
        try:
            await self._step(transport.set_local_description(description))
            final = await ready
        finally:
            # A reset may already have handed the slot to a newer handshake
            if self._local_ready is ready:
                self._local_ready = None
        self.local_token = signaling.encode(final)
        return self.local_token

    # ========== Handshake ==========

    async def create_offer(self) -> str:
        """
        Start a handshake as initiator.

        Returns:
            The offer token to give to the other side

        Raises:
            InvalidState: If not IDLE
            TransportFailure: If the transport could not create the offer
        """
        transport = self._begin(Role.INITIATOR, ConnectionState.AWAITING_LOCAL_DESCRIPTION)
        try:
            transport.open_channel()
            offer = await self._step(transport.create_local_offer())
            token = await self._publish_local(transport, offer)
        except PasteLinkError as e:
            raise self._fail_if_current(transport, e)

        if self._transport is transport:
            self._set_state(ConnectionState.AWAITING_REMOTE_TOKEN)
        logger.info("Offer ready")
        return token

    async def accept_offer_and_respond(self, token: str) -> str:
        """
        Answer an initiator's offer token as responder.

        Returns:
            The answer token to give back to the initiator

        Raises:
            InvalidState: If not IDLE
            MalformedToken: If the token cannot be decoded
            TransportFailure: If the transport rejects the offer
        """
        transport = self._begin(Role.RESPONDER, ConnectionState.NEGOTIATING)
        try:
            remote = self._decode(token)
            if remote.type != "offer":
                raise MalformedToken(f"Expected an offer, got an {remote.type}")
            await self._step(transport.set_remote_description(remote))
            answer = await self._step(transport.create_local_answer(remote))
            answer_token = await self._publish_local(transport, answer)
        except PasteLinkError as e:
            raise self._fail_if_current(transport, e)

        logger.info("Answer ready")
        return answer_token

    async def finalize_with_answer(self, token: str) -> None:
        """
        Complete the initiator's handshake with the responder's answer token.

        Raises:
            InvalidState: If not the initiator awaiting a remote token
            MalformedToken: If the token cannot be decoded
            TransportFailure: If the transport rejects the answer
        """
        if self.role != Role.INITIATOR or self.state != ConnectionState.AWAITING_REMOTE_TOKEN:
            raise InvalidState(f"Not waiting for an answer (state {self.state.value})")

        transport = self._transport
        self._set_state(ConnectionState.NEGOTIATING)
        try:
            remote = self._decode(token)
            if remote.type != "answer":
                raise MalformedToken(f"Expected an answer, got an {remote.type}")
            await self._step(transport.set_remote_description(remote))
        except PasteLinkError as e:
            raise self._fail_if_current(transport, e)

        logger.info("Answer accepted, waiting for the channel to open")

    def _fail_if_current(self, transport: PeerTransport, error: PasteLinkError) -> PasteLinkError:
        # A reset during the await already discarded this attempt
        if self._transport is transport and self.state != ConnectionState.FAILED:
            self._fail(error)
        return error

    async def reset(self) -> None:
        """Close everything and return to IDLE; safe from any state"""
        transport, self._transport = self._transport, None
        if self._local_ready is not None and not self._local_ready.done():
            self._local_ready.set_exception(InvalidState("Session was reset"))

        self.engine.reset()
        self.role = None
        self.local_token = None
        self.last_error = None

        if transport is not None:
            transport.set_listener(None)
            try:
                await transport.close()
            except Exception as e:
                logger.warning(f"Error while closing transport: {e}")

        self._set_state(ConnectionState.IDLE)
        logger.info("Session reset")

    # ========== Events ==========

    def _on_transport_event(self, transport: PeerTransport, event: Event):
        if transport is not self._transport:
            logger.debug(f"Ignoring {type(event).__name__} from a discarded transport")
            return
        self.on_event(event)

    def on_event(self, event: Event):
        """Single entry point for everything the transport reports"""
        if isinstance(event, LocalDescriptionReady):
            if self._local_ready is not None and not self._local_ready.done():
                self._local_ready.set_result(event.description)
            else:
                logger.debug("Local description ready with nobody waiting")

        elif isinstance(event, ChannelOpened):
            if self.state != ConnectionState.NEGOTIATING:
                logger.warning(f"Channel opened while {self.state.value}, ignoring")
                return
            self.engine.attach(event.channel)
            self._set_state(ConnectionState.OPEN)

        elif isinstance(event, ChannelClosed):
            if self.state == ConnectionState.OPEN:
                self.engine.detach()
                self._set_state(ConnectionState.CLOSED)
            elif self.state in (ConnectionState.AWAITING_LOCAL_DESCRIPTION,
                                ConnectionState.AWAITING_REMOTE_TOKEN,
                                ConnectionState.NEGOTIATING):
                self._fail(TransportFailure("Channel closed before it opened"))

        elif isinstance(event, MessageReceived):
            if self.state != ConnectionState.OPEN:
                logger.warning(f"Dropping message received while {self.state.value}")
                return
            self.engine.handle_message(event.data)

        elif isinstance(event, TransportFailed):
            if self.state == ConnectionState.OPEN:
                self.engine.detach()
            if self.state not in (ConnectionState.IDLE, ConnectionState.CLOSED, ConnectionState.FAILED):
                self._fail(TransportFailure(event.reason))

        else:
            logger.warning(f"Unknown event: {event!r}")
