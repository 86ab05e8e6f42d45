import asyncio
import json

from proflink.services.realtime import RealtimeHub, format_sse, notifications_channel, stream_channel


class FakeRequest:
    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


def test_publish_reaches_only_channel_subscribers() -> None:
    async def scenario():
        hub = RealtimeHub()
        mine = hub.subscribe(notifications_channel('user-1'))
        other = hub.subscribe(notifications_channel('user-2'))

        delivered = hub.publish(notifications_channel('user-1'), {'event': 'notification_added'})
        event = await mine.get(timeout=1)

        assert delivered == 1
        assert event == {'event': 'notification_added'}
        assert other.queue.empty()

        mine.close()
        assert hub.subscriber_count(notifications_channel('user-1')) == 0
        assert hub.publish(notifications_channel('user-1'), {'event': 'ignored'}) == 0

    asyncio.run(scenario())


def test_publish_from_worker_thread_is_delivered() -> None:
    async def scenario():
        hub = RealtimeHub()
        subscription = hub.subscribe('appointments:user-1')

        await asyncio.to_thread(hub.publish, 'appointments:user-1', {'event': 'appointment_updated'})

        assert await subscription.get(timeout=1) == {'event': 'appointment_updated'}

    asyncio.run(scenario())


def test_format_sse_names_the_event() -> None:
    message = format_sse({'event': 'notification_read', 'id': 'abc'}, 'notification_read')

    assert message.startswith('event: notification_read\ndata: ')
    assert message.endswith('\n\n')
    assert json.loads(message.split('data: ', 1)[1]) == {'event': 'notification_read', 'id': 'abc'}


def test_stream_channel_yields_events_and_unsubscribes() -> None:
    async def scenario():
        hub = RealtimeHub()
        request = FakeRequest()
        stream = stream_channel(request, 'notifications:user-1', keepalive_seconds=0.05, hub=hub)

        assert await stream.__anext__() == ': connected\n\n'
        assert await stream.__anext__() == ': keepalive\n\n'

        hub.publish('notifications:user-1', {'event': 'notification_added', 'id': 'n1'})
        message = await stream.__anext__()
        assert message.startswith('event: notification_added\n')

        request.disconnected = True
        await stream.aclose()
        assert hub.subscriber_count('notifications:user-1') == 0

    asyncio.run(scenario())
