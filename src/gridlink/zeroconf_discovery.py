import logging
import re

from zeroconf import Zeroconf, ServiceBrowser, IPVersion

from gridlink.discovery import DeviceIdentity

logger = logging.getLogger(__name__)

SERVICE_TYPE = '_monome-osc._udp.local.'

_service_name = re.compile(r'^(?P<name>.*?)\s*\((?P<id>[^)]+)\)$')


def parse_service_name(service_name):
    """
    Splits a serialosc service instance name into the device name and id.

    >>> parse_service_name('monome 128 (m128-0231)._monome-osc._udp.local.')
    ('monome 128', 'm128-0231')
    >>> parse_service_name('arc._monome-osc._udp.local.')
    ('arc', 'arc')
    """
    instance = service_name[:-len(SERVICE_TYPE) - 1] if service_name.endswith('.' + SERVICE_TYPE) \
        else service_name
    match = _service_name.match(instance)
    if not match:
        return instance, instance
    return match.group('name'), match.group('id')


def identity_for_service(info, service_name):
    """
    Builds the DeviceIdentity for a resolved service.
    :return: the identity, or None if the service has no usable address.
    """
    addresses = info.parsed_addresses(IPVersion.V4Only)
    host = addresses[0] if addresses else info.server
    if not host or not info.port:
        return None
    name, id = parse_service_name(service_name)
    return DeviceIdentity(id, name, host, info.port)


class ZeroconfDeviceBrowser:
    """
    Reports devices as serialosc advertises them over zeroconf.
    The callback is called with a DeviceIdentity from the zeroconf browser thread.
    """

    def __init__(self, callback, use_zeroconf=True):
        """
        :param use_zeroconf when False, no browser is started and services are only
            reported through add_service()
        """
        self.callback = callback
        logger.info("listening for zeroconf services of type %s" % SERVICE_TYPE)
        if use_zeroconf:
            self.zeroconf = Zeroconf()
            self.browser = ServiceBrowser(self.zeroconf, SERVICE_TYPE, self)
        else:
            self.zeroconf = None
            self.browser = None

    def add_service(self, zeroconf, type, name):
        """ notification from the service browser that a service has been added """
        info = zeroconf.get_service_info(type, name)
        identity = identity_for_service(info, name) if info else None
        if identity is None:
            logger.warning("no address for service %s type %s" % (name, type))
            return
        logger.info("service available: %s" % name)
        self.callback(identity)

    def remove_service(self, zeroconf, type, name):
        logger.info("service unavailable: %s" % name)

    def update_service(self, zeroconf, type, name):
        pass

    def close(self):
        if self.browser:
            self.browser.cancel()
            self.browser = None
        if self.zeroconf:
            self.zeroconf.close()
            self.zeroconf = None
