"""
A session is the private channel to one device: a transmitter to the device, a receiver
for its events, and the handler state those events are folded into.

Opening a session negotiates the reply host, reply port and address prefix with the
device. Inbound messages then have the prefix stripped and are routed to the handler:

    /grid/key   x y how     -> handle_grid_key
    /enc/key    enc how     -> handle_enc_key
    /enc/delta  enc delta   -> handle_enc_delta

Anything else is logged and ignored.
"""
import logging
import threading

from gridlink.interfaces import ConnectionInfo, ConnectionClient
from gridlink.support.atom import Atom, UNSET
from gridlink.transport import Message

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = '/-'

SYS_HOST = '/sys/host'
SYS_PORT = '/sys/port'
SYS_PREFIX = '/sys/prefix'

# stripped address -> (handler method, argument count)
ROUTES = {
    '/grid/key': ('handle_grid_key', 3),
    '/enc/key': ('handle_enc_key', 2),
    '/enc/delta': ('handle_enc_delta', 2),
}


def strip_prefix(address, prefix):
    """
    Removes the session prefix from an inbound address.
    :return: the remaining address, or None if the address is not under the prefix.

    >>> strip_prefix('/-/grid/key', '/-')
    '/grid/key'
    >>> strip_prefix('/other/grid/key', '/-') is None
    True
    """
    if address.startswith(prefix) and address[len(prefix):].startswith('/'):
        return address[len(prefix):]
    return None


class SessionInfo(ConnectionInfo):
    """
    What a handler binding is given about its session. Property lookups read the
    device's entry in the connection registry, so they see properties as they arrive.
    """

    def __init__(self, device_id, transmitter, prefix, registry, state: Atom):
        self._device_id = device_id
        self._transmitter = transmitter
        self._prefix = prefix
        self._registry = registry
        self._state = state

    def get_transmitter(self):
        return self._transmitter

    def get_prefix(self):
        return self._prefix

    def get_keys(self):
        return set(self._registry.driver(self._device_id))

    def get_key(self, k):
        return self._registry.driver(self._device_id).get(k)

    def swap_state(self, f):
        # a handler may be handed events before get_initial_state() has been stored
        return self._state.swap_if_set(f)


class Session:
    """
    :param identity:    the DeviceIdentity of the device
    :param binding:     callable taking a SessionInfo and returning a ConnectionClient
    :param me:          the host the device should send events to
    :param registry:    the ConnectionRegistry holding the device's driver properties
    """

    def __init__(self, identity, binding, me, registry, transport, prefix=DEFAULT_PREFIX):
        self.identity = identity
        self.me = me
        self.prefix = prefix
        self.state = Atom()
        self.handler = None
        self.transmitter = None
        self.receiver = None
        self._binding = binding
        self._registry = registry
        self._transport = transport
        self._closed = False
        self._close_lock = threading.Lock()

    def open(self):
        """
        Opens the channel, creates and initializes the handler, and negotiates with the device.
        Messages arriving before the handler state is initialized leave the state unset.
        If any step fails, whatever was opened is closed and the error is raised.
        """
        identity = self.identity
        self.transmitter = self._transport.start_transmitter(identity.host, identity.port)
        try:
            self.receiver = self._transport.start_receiver(self.dispatch)
            info = SessionInfo(identity.id, self.transmitter, self.prefix, self._registry, self.state)
            self.handler = self._binding(info)     # type: ConnectionClient
            self.state.reset(self.handler.get_initial_state())
            self._negotiate()
        except Exception:
            self._release()
            raise
        logger.info("session opened to %s on port %s" % (identity.name, self.receiver.port))
        return self

    def _negotiate(self):
        for message in (Message(SYS_HOST, self.me),
                        Message(SYS_PORT, self.receiver.port),
                        Message(SYS_PREFIX, self.prefix)):
            self.transmitter.transmit(message)

    def current_state(self):
        """ the handler state, or None before initialization. """
        state = self.state.deref()
        return None if state is UNSET else state

    def dispatch(self, sender, address, args):
        """ routes one inbound message to the handler. Called on the receiver thread. """
        stripped = strip_prefix(address, self.prefix)
        route = ROUTES.get(stripped)
        if route is None:
            logger.info("other message %s %s" % (address, args))
            return
        method, arity = route
        if len(args) != arity:
            logger.warning("malformed message %s %s from %s" % (address, args, self.identity.name))
            return
        logger.debug("%s %s %s" % (self.identity.name, stripped, args))
        try:
            self.state.swap_if_set(lambda state: getattr(self.handler, method)(state, *args))
        except Exception as e:
            logger.exception("handler for %s failed on %s %s: %s" % (self.identity.name, address, args, e))

    def close(self):
        """
        Notifies the handler with its final state, then closes the transmitter and receiver.
        Only the first call has any effect.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self.handler.shutdown(self.current_state())
        finally:
            self._release()
        logger.info("session closed to %s" % self.identity.name)

    def _release(self):
        try:
            self.transmitter and self.transmitter.close()
        finally:
            self.receiver and self.receiver.close()
