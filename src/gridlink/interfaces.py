"""
The capability sets exchanged between gridlink and applications.

An application supplies, per device id or name, a handler binding: a callable that
takes a ConnectionInfo and returns a ConnectionClient. gridlink hands back a
ConnectionSet covering every device it connected to.
"""
from abc import ABCMeta, abstractmethod


class ConnectionClient(metaclass=ABCMeta):
    """
    Handles the events of one device. Each handle method is given the current state and
    returns the new state. The methods are called one at a time, from the session's receiver thread.
    """

    @abstractmethod
    def get_initial_state(self):
        """ the state to start the session with. """
        raise NotImplementedError

    @abstractmethod
    def handle_grid_key(self, state, x, y, how):
        """ a grid button was pressed (how=1) or released (how=0). Returns the new state. """
        raise NotImplementedError

    @abstractmethod
    def handle_enc_key(self, state, enc, how):
        """ an encoder was pressed or released. Returns the new state. """
        raise NotImplementedError

    @abstractmethod
    def handle_enc_delta(self, state, enc, delta):
        """ an encoder was turned by delta steps. Returns the new state. """
        raise NotImplementedError

    @abstractmethod
    def shutdown(self, state):
        """ shut down any other connections or activity. Called once, before the channel is closed. """
        raise NotImplementedError


class ConnectionInfo(metaclass=ABCMeta):
    """ Information and callbacks passed to a handler binding. """

    @abstractmethod
    def get_transmitter(self):
        """ the transmitter to the device, for sending LED updates and the like. """
        raise NotImplementedError

    @abstractmethod
    def get_prefix(self):
        """ the address prefix negotiated with the device. """
        raise NotImplementedError

    @abstractmethod
    def get_keys(self):
        """ the set of /sys property keys reported by the device so far. """
        raise NotImplementedError

    @abstractmethod
    def get_key(self, k):
        """ the value of a /sys property, or None if it has not been reported. """
        raise NotImplementedError

    @abstractmethod
    def swap_state(self, f):
        """ applies f to the session state. Does nothing until the state has been initialized. """
        raise NotImplementedError


class ConnectionSet(metaclass=ABCMeta):
    """ All the current connections. """

    @abstractmethod
    def get_state(self):
        """ a snapshot mapping device id to its driver properties and handler state accessor. """
        raise NotImplementedError

    @abstractmethod
    def shutdown_all(self):
        """ shuts down all handlers and channels. """
        raise NotImplementedError
