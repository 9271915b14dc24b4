"""
Time-boxed discovery of serialosc devices and their properties.

A discovery opens a transmitter and a receiver, sends a single request carrying the
receiver's port, and publishes each reply to its listeners until its window closes.
Nothing waits for replies: the calls return as soon as the request is sent, and the
channel is closed by a timer.
"""
import logging
from abc import ABCMeta, abstractmethod
from collections import namedtuple

from gridlink import transport as osc
from gridlink.support.events import EventSource
from gridlink.support.timer import do_after
from gridlink.transport import Message

logger = logging.getLogger(__name__)

SERIALOSC_PORT = 12002
DISCOVERY_WINDOW = 1.0      # seconds

LIST_DEVICES = '/serialosc/list'
DEVICE = '/serialosc/device'
SYS_INFO = '/sys/info'


DeviceIdentity = namedtuple('DeviceIdentity', 'id name host port')
DeviceProperty = namedtuple('DeviceProperty', 'key value')


def property_value(args):
    """
    A property with one argument is a scalar, otherwise a tuple.
    >>> property_value(['m1000'])
    'm1000'
    >>> property_value([16, 8])
    (16, 8)
    """
    return args[0] if len(args) == 1 else tuple(args)


class Discovery(metaclass=ABCMeta):
    """
    A single request/collect exchange with a serialosc endpoint.
    Subclasses define the request and how replies are turned into results.
    """
    request_address = None

    def __init__(self, host, me, port, transport=osc.default_transport):
        self.host = host
        self.me = me
        self.port = port
        self.listeners = EventSource()
        self._transport = transport
        self._transmitter = None
        self._receiver = None
        self._timer = None
        self.closed = False

    def start(self, window=DISCOVERY_WINDOW):
        """ sends the request and schedules close() after `window` seconds. """
        self._transmitter = self._transport.start_transmitter(self.host, self.port)
        try:
            self._receiver = self._transport.start_receiver(self._dispatch)
            self._transmitter.transmit(Message(self.request_address, self.me, self._receiver.port))
        except Exception:
            self.close()
            raise
        self._timer = do_after(window, self.close)
        return self

    def _dispatch(self, sender, address, args):
        if self.closed:
            return
        result = self._result(address, args)
        if result is not None:
            self.listeners.fire(result)

    @abstractmethod
    def _result(self, address, args):
        """ template method: the result to publish for a reply, or None to ignore it. """
        raise NotImplementedError

    def close(self):
        """ stops collecting replies and releases the transmitter and receiver. """
        if self.closed:
            return
        self.closed = True
        if self._timer is not None:
            self._timer.cancel()
        self._transmitter and self._transmitter.close()
        self._receiver and self._receiver.close()


class DeviceListing(Discovery):
    """ Asks serialosc to list the devices it serves. Publishes a DeviceIdentity for each. """
    request_address = LIST_DEVICES

    def _result(self, address, args):
        if address != DEVICE:
            logger.debug("ignoring %s %s from %s" % (address, args, self.host))
            return None
        if len(args) != 3:
            logger.warning("malformed device announcement from %s: %s" % (self.host, args))
            return None
        id, name, port = args
        identity = DeviceIdentity(id, name, self.host, port)
        logger.info("device found: %s" % (identity,))
        return identity


class PropertyListing(Discovery):
    """ Asks a device for its system properties. Publishes a DeviceProperty for each reply. """
    request_address = SYS_INFO

    def _result(self, address, args):
        return DeviceProperty(address, property_value(args))


def _start(discovery, callback, window):
    discovery.listeners.add(callback)
    return discovery.start(window)


def list_devices(host, me, port, callback, transport=osc.default_transport, window=DISCOVERY_WINDOW):
    """
    Lists the devices served by the serialosc daemon at host:port, calling `callback` with a
    DeviceIdentity for each device announced within `window` seconds.
    :param me:  the address the daemon should reply to
    :return: the running DeviceListing
    """
    return _start(DeviceListing(host, me, port, transport), callback, window)


def list_properties(host, me, port, callback, transport=osc.default_transport, window=DISCOVERY_WINDOW):
    """
    Lists the /sys properties of the device at host:port, calling `callback` with a
    DeviceProperty for each reply received within `window` seconds.
    :return: the running PropertyListing
    """
    return _start(PropertyListing(host, me, port, transport), callback, window)
