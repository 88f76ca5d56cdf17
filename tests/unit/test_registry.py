"""Unit tests for the session registry and output dispatcher."""

import pytest

from termvault.models import ServerConnection
from termvault.ssh import OutputDispatcher, SessionContext, SessionEvent, SessionRegistry


@pytest.fixture
def registry(settings, fakes):
    context = SessionContext(
        settings=settings,
        transport_factory=lambda: fakes.Transport(),
        auto_dispatch=False,
    )
    registry = SessionRegistry(context)
    yield registry
    registry.close_all()


def _connection(index: int) -> ServerConnection:
    return ServerConnection(name=f"host-{index}", host=f"host{index}.example.com", username="alice")


class TestBookkeeping:
    """Tests for create/close bookkeeping."""

    @pytest.mark.parametrize("created,closed", [(1, 0), (5, 2), (4, 4)])
    def test_n_minus_m(self, registry, created, closed):
        sessions = [registry.create(_connection(i)) for i in range(created)]

        for session in sessions[:closed]:
            registry.close(session.session_id)

        assert registry.active_count == created - closed
        assert len(registry.all()) == created - closed

    def test_unique_ids(self, registry):
        ids = {registry.create(_connection(i)).session_id for i in range(20)}
        assert len(ids) == 20

    def test_create_does_not_connect(self, registry):
        session = registry.create(_connection(1))

        assert not session.is_connected()
        assert registry.get(session.session_id) is session
        assert session.session_id in registry

    def test_close_unknown_is_noop(self, registry):
        registry.create(_connection(1))

        registry.close("no-such-session")

        assert registry.active_count == 1

    def test_close_twice_is_noop(self, registry):
        events = []
        registry.add_listener(lambda event, session: events.append(event))
        session = registry.create(_connection(1))

        registry.close(session.session_id)
        registry.close(session.session_id)

        assert events == [SessionEvent.CREATED, SessionEvent.CLOSED]
        assert registry.get(session.session_id) is None

    def test_close_disconnects(self, registry):
        session = registry.create(_connection(1))
        session.connect()
        assert registry.connected_count == 1

        registry.close(session.session_id)

        assert not session.is_connected()
        assert registry.connected_count == 0

    def test_close_all(self, registry):
        for i in range(3):
            registry.create(_connection(i)).connect()

        assert registry.close_all() == 3
        assert len(registry) == 0


class TestQueries:
    """Tests for aggregate queries."""

    def test_active_connection_names(self, registry):
        connected = registry.create(_connection(1))
        connected.connect()
        registry.create(_connection(2))

        assert registry.active_connection_names() == ["host-1"]

    def test_total_buffered_text_size(self, registry):
        first = registry.create(_connection(1))
        second = registry.create(_connection(2))
        first.restore_history("12345")
        second.restore_history("abc")

        assert registry.total_buffered_text_size() == 8

    def test_session_states(self, registry):
        session = registry.create(_connection(1))

        states = registry.session_states()

        assert [s.session_id for s in states] == [session.session_id]
        assert not states[0].connected


class TestListeners:
    """Tests for lifecycle listeners."""

    def test_events(self, registry):
        events = []
        registry.add_listener(lambda event, session: events.append((event, session.connection.name)))

        session = registry.create(_connection(1))
        registry.close(session.session_id)

        assert events == [(SessionEvent.CREATED, "host-1"), (SessionEvent.CLOSED, "host-1")]

    def test_failing_listener_isolated(self, registry):
        seen = []

        def broken(event, session):
            raise RuntimeError("listener bug")

        registry.add_listener(broken)
        registry.add_listener(lambda event, session: seen.append(event))

        session = registry.create(_connection(1))
        registry.close(session.session_id)

        assert seen == [SessionEvent.CREATED, SessionEvent.CLOSED]
        assert registry.active_count == 0

    def test_remove_listener(self, registry):
        events = []

        def listener(event, session):
            events.append(event)

        registry.add_listener(listener)
        registry.remove_listener(listener)
        registry.remove_listener(listener)
        registry.create(_connection(1))

        assert events == []


class TestOutputDispatcher:
    """Tests for queued output delivery."""

    def test_drain_in_order(self):
        dispatcher = OutputDispatcher()
        received = []
        dispatcher.set_consumer(received.append)

        for chunk in ["x", "y", "z"]:
            dispatcher.put(chunk)

        assert dispatcher.pending == 3
        assert dispatcher.drain() == 3
        assert received == ["x", "y", "z"]
        assert dispatcher.drain() == 0

    def test_drain_stops_at_end_marker(self):
        dispatcher = OutputDispatcher()
        dispatcher.put("last")
        dispatcher.close()
        dispatcher.close()

        assert dispatcher.drain() == 1
        assert dispatcher.drain(timeout=0.01) == 0

    def test_no_consumer(self):
        dispatcher = OutputDispatcher()
        dispatcher.put("dropped")

        assert dispatcher.drain() == 1

    def test_dispatcher_thread(self):
        dispatcher = OutputDispatcher(name="test")
        received = []
        dispatcher.set_consumer(received.append)

        dispatcher.start()
        for chunk in ["1", "2", "3"]:
            dispatcher.put(chunk)
        dispatcher.close()
        dispatcher.join(timeout=2.0)

        assert received == ["1", "2", "3"]

    def test_consumer_error_logged(self, caplog):
        dispatcher = OutputDispatcher(name="noisy")
        received = []

        def consumer(chunk):
            received.append(chunk)
            if chunk == "bad":
                raise ValueError("cannot render")

        dispatcher.set_consumer(consumer)
        for chunk in ["ok", "bad", "ok again"]:
            dispatcher.put(chunk)

        dispatcher.drain()

        assert received == ["ok", "bad", "ok again"]
        assert "Output consumer of noisy raised" in caplog.text
