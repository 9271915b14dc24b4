"""
Connects every discovered device that has a handler binding, and keeps track of the
resulting sessions so they can be inspected and shut down together.

    connections = connect_all('127.0.0.1', '127.0.0.1', {'monome128': MyGridHandler})
    ...
    connections.get_state()
    connections.shutdown_all()
"""
import logging
from collections import namedtuple

from gridlink import transport as osc
from gridlink.config.config import connection_settings
from gridlink.discovery import list_devices, list_properties, SERIALOSC_PORT, DISCOVERY_WINDOW, DeviceIdentity
from gridlink.interfaces import ConnectionSet
from gridlink.session import Session, DEFAULT_PREFIX
from gridlink.support.atom import Atom
from gridlink.transport import TransportError
from gridlink.zeroconf_discovery import ZeroconfDeviceBrowser

logger = logging.getLogger(__name__)


DeviceEntry = namedtuple('DeviceEntry', 'driver handler_state')


def no_handler_state():
    return None


class ConnectionRegistry:
    """
    Maps device id to a DeviceEntry: the driver properties reported by the device, and an
    accessor for the current state of its session handler.
    Each update replaces one device's entry in a fresh mapping, committed atomically.
    """

    def __init__(self):
        self._devices = Atom({})

    def _update_entry(self, device_id, fn):
        def update(devices):
            updated = dict(devices)
            updated[device_id] = fn(devices.get(device_id, DeviceEntry({}, no_handler_state)))
            return updated
        self._devices.swap(update)

    def set_property(self, device_id, key, value):
        self._update_entry(device_id, lambda e: e._replace(driver={**e.driver, key: value}))

    def set_handler_state(self, device_id, accessor):
        self._update_entry(device_id, lambda e: e._replace(handler_state=accessor))

    def driver(self, device_id) -> dict:
        entry = self._devices.deref().get(device_id)
        return entry.driver if entry else {}

    def snapshot(self) -> dict:
        return dict(self._devices.deref())


class ShutdownRegistry:
    """ An ordered list of shutdown actions, each run exactly once by run_all(). """

    def __init__(self):
        self._actions = Atom(())

    def register(self, action):
        self._actions.swap(lambda actions: actions + (action,))

    def __len__(self):
        return len(self._actions.deref())

    def _take_all(self):
        while True:
            actions = self._actions.deref()
            if self._actions.compare_and_set(actions, ()):
                return actions

    def run_all(self):
        """
        Runs every registered action in registration order.
        A failing action does not stop the others: its error is logged, and the first
        error is raised once all actions have run.
        """
        first_error = None
        for action in self._take_all():
            try:
                action()
            except Exception as e:
                logger.exception("shutdown action %s failed: %s" % (action, e))
                first_error = first_error or e
        if first_error is not None:
            raise first_error


class DeviceConnections(ConnectionSet):
    """
    Receives discovered devices and opens a session for each one with a handler binding.
    Driver properties are collected for every device, bound or not, unless
    collect_unbound_properties is False.

    :param me:          the address devices should send to
    :param handlers:    a mapping from device id or name to a handler binding
    """

    def __init__(self, me, handlers, prefix=DEFAULT_PREFIX, transport=osc.default_transport,
                 window=DISCOVERY_WINDOW, collect_unbound_properties=True):
        self.me = me
        self.handlers = handlers
        self.prefix = prefix
        self.window = window
        self.collect_unbound_properties = collect_unbound_properties
        self.registry = ConnectionRegistry()
        self.shutdowns = ShutdownRegistry()
        self._transport = transport

    def binding_for(self, identity):
        return self.handlers.get(identity.id) or self.handlers.get(identity.name)

    def device_found(self, identity: DeviceIdentity):
        """ opens a session to the device if it has a binding, and starts collecting its properties. """
        binding = self.binding_for(identity)
        if binding:
            self._open_session(identity, binding)
        else:
            logger.debug("no handler for %s (%s)" % (identity.name, identity.id))
        if binding or self.collect_unbound_properties:
            self._collect_properties(identity)

    def _open_session(self, identity, binding):
        session = Session(identity, binding, self.me, self.registry, self._transport, self.prefix)
        try:
            session.open()
        except Exception as e:
            logger.exception("unable to open session to %s: %s" % (identity.name, e))
            return None
        self.registry.set_handler_state(identity.id, session.current_state)
        self.shutdowns.register(session.close)
        return session

    def _collect_properties(self, identity):
        def property_found(prop):
            self.registry.set_property(identity.id, prop.key, prop.value)
        try:
            list_properties(identity.host, self.me, identity.port, property_found,
                            transport=self._transport, window=self.window)
        except TransportError as e:
            logger.exception("unable to list properties of %s: %s" % (identity.name, e))

    def discover(self, host, port=SERIALOSC_PORT):
        """ asks the serialosc daemon at host:port for its devices. """
        return list_devices(host, self.me, port, self.device_found, transport=self._transport, window=self.window)

    def get_state(self):
        return self.registry.snapshot()

    def shutdown_all(self):
        self.shutdowns.run_all()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown_all()


def connect_all(host, me, handlers, port=SERIALOSC_PORT, prefix=DEFAULT_PREFIX, window=DISCOVERY_WINDOW,
                transport=osc.default_transport, collect_unbound_properties=True) -> DeviceConnections:
    """
    Looks for devices served by the serialosc daemon at host:port and connects each one
    that has a handler binding. Returns immediately; sessions are opened as devices reply.

    :param handlers: maps device id (or, failing that, device name) to a callable that takes
        a ConnectionInfo and returns a ConnectionClient.
    """
    connections = DeviceConnections(me, handlers, prefix=prefix, transport=transport, window=window,
                                    collect_unbound_properties=collect_unbound_properties)
    connections.discover(host, port)
    return connections


def connect_configured(handlers, config, transport=osc.default_transport) -> DeviceConnections:
    """ as connect_all(), with the arguments taken from a validated gridlink configuration. """
    return connect_all(handlers=handlers, transport=transport, **connection_settings(config))


def connect_zeroconf(me, handlers, prefix=DEFAULT_PREFIX, transport=osc.default_transport,
                     collect_unbound_properties=True):
    """
    Connects devices as serialosc advertises them over zeroconf, for as long as the returned
    browser is open.
    :return: (connections, browser)
    """
    connections = DeviceConnections(me, handlers, prefix=prefix, transport=transport,
                                    collect_unbound_properties=collect_unbound_properties)
    browser = ZeroconfDeviceBrowser(connections.device_found)
    return connections, browser
