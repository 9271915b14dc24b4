"""
UDP transport for OSC messages.

A Transmitter sends messages to one host/port. A Receiver listens on an ephemeral port
and calls a dispatch function with (sender, address, args) for each message received,
on its own background thread and in arrival order.

OSC encoding and decoding are provided by python-osc.
"""
import logging
import socket
import threading

from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_message_builder import OscMessageBuilder
from pythonosc.osc_server import BlockingOSCUDPServer

logger = logging.getLogger(__name__)


class TransportError(IOError):
    """ A transmitter or receiver could not be opened. """


class Message:
    """ An OSC address with its ordered arguments. """

    def __init__(self, address, *args):
        self.address = address
        self.args = tuple(args)

    def build(self):
        builder = OscMessageBuilder(address=self.address)
        for arg in self.args:
            builder.add_arg(arg)
        return builder.build()

    def __eq__(self, other):
        return isinstance(other, Message) and (self.address, self.args) == (other.address, other.args)

    def __repr__(self):
        return 'Message(%r%s)' % (self.address, ''.join(', %r' % a for a in self.args))


class Transmitter:
    def __init__(self, host, port):
        self.host = host
        self.port = port
        try:
            self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except socket.error as e:
            raise TransportError("unable to open transmitter to %s:%s" % (host, port)) from e

    def transmit(self, message: Message):
        logger.debug("-> %s:%s %s" % (self.host, self.port, message))
        try:
            self._sock.sendto(message.build().dgram, (self.host, self.port))
        except socket.error as e:
            raise TransportError("unable to send %s to %s:%s" % (message.address, self.host, self.port)) from e

    def close(self):
        self._sock.close()


class Receiver:
    def __init__(self, dispatch, interface='0.0.0.0'):
        """
        :param dispatch: called as dispatch(sender, address, args) for every message received.
        :param interface: the local address to bind. The port is chosen by the OS.
        """
        self._dispatch = dispatch
        dispatcher = Dispatcher()
        dispatcher.set_default_handler(self._receive, needs_reply_address=True)
        try:
            self._server = BlockingOSCUDPServer((interface, 0), dispatcher)
        except socket.error as e:
            raise TransportError("unable to open receiver on %s" % interface) from e
        self._thread = threading.Thread(target=self._server.serve_forever,
                                        name='osc-receiver-%d' % self.port)
        self._thread.daemon = True
        self._thread.start()

    @property
    def port(self):
        return self._server.server_address[1]

    def _receive(self, sender, address, *args):
        self._dispatch(sender, address, list(args))

    def close(self):
        """ stops serving and releases the socket. Safe to call from the dispatch thread. """
        thread = self._thread
        if thread is None:
            return
        self._thread = None
        if thread is threading.current_thread():
            # shutdown() blocks until serve_forever() returns
            threading.Thread(target=self._stop, daemon=True).start()
        else:
            self._stop()
            thread.join()

    def _stop(self):
        self._server.shutdown()
        self._server.server_close()


class OSCTransport:
    """ The default transport: UDP sockets carrying OSC. """

    def start_transmitter(self, host, port) -> Transmitter:
        return Transmitter(host, port)

    def start_receiver(self, dispatch) -> Receiver:
        return Receiver(dispatch)


default_transport = OSCTransport()
