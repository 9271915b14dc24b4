from unittest import TestCase
from unittest.mock import Mock, call, patch

from hamcrest import assert_that, is_, equal_to, contains_exactly, none, same_instance, calling, raises, empty

from gridlink import session as session_module
from gridlink.connection import ConnectionRegistry
from gridlink.discovery import DeviceIdentity
from gridlink.interfaces import ConnectionClient
from gridlink.session import Session, SessionInfo, strip_prefix
from gridlink.support.atom import Atom, UNSET
from gridlink.transport import Message, TransportError
from gridlink.transport_test import FakeTransport

DEVICE = DeviceIdentity('m0', 'monome128', '192.168.1.5', 13000)


class EventLog(ConnectionClient):
    """ a handler whose state is the tuple of events received. """

    def __init__(self, info=None, initial=()):
        self.info = info
        self.initial = initial
        self.final_state = UNSET

    def get_initial_state(self):
        return self.initial

    def handle_grid_key(self, state, x, y, how):
        return state + (('grid', x, y, how),)

    def handle_enc_key(self, state, enc, how):
        return state + (('key', enc, how),)

    def handle_enc_delta(self, state, enc, delta):
        return state + (('delta', enc, delta),)

    def shutdown(self, state):
        self.final_state = state


class StripPrefixTest(TestCase):

    def test_strips_prefix(self):
        assert_that(strip_prefix('/-/grid/key', '/-'), is_('/grid/key'))

    def test_other_prefix(self):
        assert_that(strip_prefix('/box/grid/key', '/-'), is_(none()))

    def test_unprefixed(self):
        assert_that(strip_prefix('/grid/key', '/-'), is_(none()))

    def test_prefix_must_end_at_segment(self):
        assert_that(strip_prefix('/--/grid/key', '/-'), is_(none()))


class SessionInfoTest(TestCase):

    def setUp(self):
        self.registry = ConnectionRegistry()
        self.tx = Mock()
        self.state = Atom()
        self.sut = SessionInfo('m0', self.tx, '/-', self.registry, self.state)

    def test_transmitter_and_prefix(self):
        assert_that(self.sut.get_transmitter(), is_(self.tx))
        assert_that(self.sut.get_prefix(), is_('/-'))

    def test_keys_follow_registry(self):
        assert_that(self.sut.get_keys(), is_(empty()))
        self.registry.set_property('m0', '/sys/size', (16, 8))
        self.registry.set_property('m0', '/sys/id', 'm0')
        self.registry.set_property('m1', '/sys/id', 'm1')
        assert_that(self.sut.get_keys(), is_({'/sys/size', '/sys/id'}))
        assert_that(self.sut.get_key('/sys/size'), is_((16, 8)))
        assert_that(self.sut.get_key('/sys/rotation'), is_(none()))

    def test_swap_state_before_initialization(self):
        f = Mock()
        self.sut.swap_state(f)
        f.assert_not_called()
        assert_that(self.state.deref(), is_(same_instance(UNSET)))

    def test_swap_state_after_initialization_is_cumulative(self):
        self.state.reset(0)
        self.sut.swap_state(lambda s: s + 1)
        self.sut.swap_state(lambda s: s * 10)
        assert_that(self.state.deref(), is_(10))


class SessionTestCase(TestCase):

    def setUp(self):
        self.transport = FakeTransport()
        self.registry = ConnectionRegistry()
        self.handler = EventLog()
        self.binding = Mock(return_value=self.handler)

    def open_session(self, prefix='/-'):
        sut = Session(DEVICE, self.binding, '192.168.1.10', self.registry, self.transport, prefix)
        return sut.open()

    def deliver(self, address, *args):
        self.transport.receivers[0].deliver(address, *args)


class SessionOpenTest(SessionTestCase):

    def test_opens_channel_to_device(self):
        sut = self.open_session()
        assert_that((sut.transmitter.host, sut.transmitter.port), is_(('192.168.1.5', 13000)))
        assert_that(sut.receiver, is_(self.transport.receivers[0]))

    def test_binding_receives_session_info(self):
        sut = self.open_session()
        info = self.binding.call_args[0][0]
        assert_that(info.get_transmitter(), is_(sut.transmitter))
        assert_that(info.get_prefix(), is_('/-'))
        assert_that(sut.handler, is_(self.handler))

    def test_state_initialized(self):
        self.handler.initial = ('start',)
        sut = self.open_session()
        assert_that(sut.current_state(), is_(('start',)))

    def test_negotiation(self):
        sut = self.open_session()
        assert_that(sut.transmitter.sent, contains_exactly(
            Message('/sys/host', '192.168.1.10'),
            Message('/sys/port', sut.receiver.port),
            Message('/sys/prefix', '/-')))

    def test_custom_prefix(self):
        sut = self.open_session('/box')
        assert_that(sut.transmitter.sent[-1], is_(Message('/sys/prefix', '/box')))
        self.deliver('/box/grid/key', 0, 0, 1)
        assert_that(sut.current_state(), is_((('grid', 0, 0, 1),)))

    def test_failed_binding_releases_channel(self):
        self.binding.side_effect = ValueError("no")
        assert_that(calling(self.open_session), raises(ValueError))
        assert_that(self.transport.transmitters[0].closed, is_(True))
        assert_that(self.transport.receivers[0].closed, is_(True))

    def test_failed_receiver_releases_transmitter(self):
        self.transport.start_receiver = Mock(side_effect=TransportError())
        assert_that(calling(self.open_session), raises(TransportError))
        assert_that(self.transport.transmitters[0].closed, is_(True))

    def test_message_before_initialization_is_dropped(self):
        def binding(info):
            # an event arrives while the handler is still being created
            self.deliver('/-/grid/key', 1, 1, 1)
            return self.handler
        self.binding.side_effect = binding
        sut = self.open_session()
        assert_that(sut.current_state(), is_(()))


class SessionDispatchTest(SessionTestCase):

    def test_grid_key(self):
        self.handler.handle_grid_key = Mock(return_value='new state')
        sut = self.open_session()
        self.deliver('/-/grid/key', 3, 5, 1)
        self.handler.handle_grid_key.assert_called_once_with((), 3, 5, 1)
        assert_that(sut.current_state(), is_('new state'))

    def test_enc_key(self):
        sut = self.open_session()
        self.deliver('/-/enc/key', 2, 1)
        assert_that(sut.current_state(), is_((('key', 2, 1),)))

    def test_enc_delta(self):
        sut = self.open_session()
        self.deliver('/-/enc/delta', 0, -3)
        assert_that(sut.current_state(), is_((('delta', 0, -3),)))

    def test_state_is_fold_of_events_in_order(self):
        sut = self.open_session()
        events = [('/-/grid/key', 0, 0, 1), ('/-/enc/delta', 1, 4), ('/-/grid/key', 0, 0, 0),
                  ('/-/enc/key', 1, 1), ('/-/enc/delta', 1, -2)]
        for event in events:
            self.deliver(*event)
        assert_that(sut.current_state(), is_(equal_to((
            ('grid', 0, 0, 1), ('delta', 1, 4), ('grid', 0, 0, 0), ('key', 1, 1), ('delta', 1, -2)))))

    def test_unrecognized_addresses_leave_state(self):
        sut = self.open_session()
        with patch.object(session_module, 'logger') as logger:
            self.deliver('/-/tilt', 0, 1, 2, 3)
            self.deliver('/grid/key', 1, 1, 1)
            self.deliver('/sys/size', 16, 8)
            assert_that(logger.info.call_count, is_(3))
        assert_that(sut.current_state(), is_(()))

    def test_malformed_arguments_leave_state(self):
        sut = self.open_session()
        with patch.object(session_module, 'logger') as logger:
            self.deliver('/-/grid/key', 1, 1)
            logger.warning.assert_called_once()
        assert_that(sut.current_state(), is_(()))

    def test_handler_error_is_logged_and_state_kept(self):
        sut = self.open_session()
        self.deliver('/-/enc/key', 0, 1)
        self.handler.handle_grid_key = Mock(side_effect=KeyError('x'))
        with patch.object(session_module, 'logger') as logger:
            self.deliver('/-/grid/key', 1, 1, 1)
            logger.exception.assert_called_once()
        assert_that(sut.current_state(), is_((('key', 0, 1),)))
        self.deliver('/-/enc/key', 0, 0)
        assert_that(sut.current_state(), is_((('key', 0, 1), ('key', 0, 0))))

    def test_handler_can_swap_state(self):
        sut = self.open_session()
        info = self.binding.call_args[0][0]
        info.swap_state(lambda s: s + ('led',))
        self.deliver('/-/grid/key', 0, 0, 1)
        assert_that(sut.current_state(), is_(('led', ('grid', 0, 0, 1))))


class SessionCloseTest(SessionTestCase):

    def test_close_notifies_handler_then_releases(self):
        sut = self.open_session()
        self.deliver('/-/grid/key', 0, 0, 1)
        sut.close()
        assert_that(self.handler.final_state, is_((('grid', 0, 0, 1),)))
        assert_that(sut.transmitter.closed, is_(True))
        assert_that(sut.receiver.closed, is_(True))

    def test_close_runs_once(self):
        sut = self.open_session()
        self.handler.shutdown = Mock()
        sut.close()
        sut.close()
        self.handler.shutdown.assert_called_once_with(())

    def test_close_releases_even_if_handler_fails(self):
        sut = self.open_session()
        self.handler.shutdown = Mock(side_effect=RuntimeError("busy"))
        assert_that(calling(sut.close), raises(RuntimeError))
        assert_that(sut.transmitter.closed, is_(True))
        assert_that(sut.receiver.closed, is_(True))

    def test_close_propagates_release_failure(self):
        sut = self.open_session()
        sut.transmitter.close = Mock(side_effect=OSError("bad fd"))
        assert_that(calling(sut.close), raises(OSError))
        assert_that(sut.receiver.closed, is_(True))
