"""
Tests for the per-owner event broadcaster.
"""
import json

from broadcast import Broadcaster, EventStream, VEHICLE_ENTERED, VEHICLE_EXITED


class TestBroadcaster:

    def test_events_reach_only_the_owner(self):
        broadcaster = Broadcaster()
        mine, theirs = [], []
        broadcaster.subscribe('owner-1', lambda event, payload: mine.append((event, payload)))
        broadcaster.subscribe('owner-2', lambda event, payload: theirs.append((event, payload)))

        delivered = broadcaster.publish('owner-1', VEHICLE_ENTERED, {'vehicle_number': 'AB1234'})

        assert delivered == 1
        assert mine == [(VEHICLE_ENTERED, {'vehicle_number': 'AB1234'})]
        assert theirs == []

    def test_publish_without_subscribers_is_a_no_op(self):
        assert Broadcaster().publish('owner-1', VEHICLE_ENTERED, {}) == 0

    def test_failing_subscriber_does_not_block_others(self):
        broadcaster = Broadcaster()
        received = []

        def broken(event, payload):
            raise RuntimeError('socket closed')

        broadcaster.subscribe('owner-1', broken)
        broadcaster.subscribe('owner-1', lambda event, payload: received.append(event))

        assert broadcaster.publish('owner-1', VEHICLE_ENTERED, {}) == 1
        assert received == [VEHICLE_ENTERED]

    def test_unsubscribe_stops_delivery(self):
        broadcaster = Broadcaster()
        received = []
        unsubscribe = broadcaster.subscribe('owner-1', lambda event, payload: received.append(event))

        unsubscribe()
        unsubscribe()
        broadcaster.publish('owner-1', VEHICLE_ENTERED, {})

        assert received == []
        assert broadcaster.subscriber_count('owner-1') == 0

    def test_no_replay_for_late_subscribers(self):
        broadcaster = Broadcaster()
        broadcaster.publish('owner-1', VEHICLE_ENTERED, {})
        received = []
        broadcaster.subscribe('owner-1', lambda event, payload: received.append(event))
        assert received == []


class TestEventStream:

    def test_stream_subscribes_on_open_and_greets_first(self):
        broadcaster = Broadcaster()
        stream = EventStream(broadcaster, 'owner-1', heartbeat=0.01)

        assert broadcaster.subscriber_count('owner-1') == 1
        assert next(stream) == ': connected\n\n'

    def test_published_events_become_frames(self):
        broadcaster = Broadcaster()
        stream = EventStream(broadcaster, 'owner-1', heartbeat=0.01)
        next(stream)

        broadcaster.publish('owner-1', VEHICLE_EXITED, {'vehicle_number': 'AB1234'})
        frame = next(stream)

        event_line, data_line, _, _ = frame.split('\n')
        assert event_line == 'event: vehicle-exited'
        assert json.loads(data_line[len('data: '):]) == {'vehicle_number': 'AB1234'}

    def test_idle_stream_sends_keep_alive(self):
        stream = EventStream(Broadcaster(), 'owner-1', heartbeat=0.01)
        next(stream)
        assert next(stream) == ': keep-alive\n\n'

    def test_other_owners_events_are_not_streamed(self):
        broadcaster = Broadcaster()
        stream = EventStream(broadcaster, 'owner-1', heartbeat=0.01)
        next(stream)

        broadcaster.publish('owner-2', VEHICLE_ENTERED, {})

        assert next(stream) == ': keep-alive\n\n'

    def test_full_stream_drops_events(self):
        broadcaster = Broadcaster()
        stream = EventStream(broadcaster, 'owner-1', heartbeat=0.01, max_pending=1)
        next(stream)

        broadcaster.publish('owner-1', VEHICLE_ENTERED, {'n': 1})
        assert broadcaster.publish('owner-1', VEHICLE_ENTERED, {'n': 2}) == 1

        assert '"n": 1' in next(stream)
        assert next(stream) == ': keep-alive\n\n'

    def test_close_unsubscribes(self):
        broadcaster = Broadcaster()
        stream = EventStream(broadcaster, 'owner-1')

        stream.close()

        assert broadcaster.subscriber_count('owner-1') == 0
