import threading
from mediaqueue.infrastructure.event_bus import EventBus
from mediaqueue.domain.events import Event, MediaQueueStatusChanged
from mediaqueue.domain.models import MediaQueueStatus

class MockEvent(Event):
    message: str

class OtherEvent(Event):
    pass

def test_event_bus_subscribe_publish():
    bus = EventBus()
    received_events = []

    bus.subscribe(MockEvent, received_events.append)
    bus.publish(MockEvent(message="hello"))

    assert len(received_events) == 1
    assert received_events[0].message == "hello"

def test_event_bus_runs_subscribers_in_subscription_order():
    bus = EventBus()
    order = []

    bus.subscribe(MockEvent, lambda e: order.append("a"))
    bus.subscribe(MockEvent, lambda e: order.append("b"))
    bus.publish(MockEvent(message="test"))

    assert order == ["a", "b"]

def test_event_bus_decorator_subscribe():
    bus = EventBus()
    received = []

    @bus.subscribe(MockEvent)
    def on_event(event: MockEvent):
        received.append(event)

    bus.publish(MockEvent(message="decorator"))
    assert len(received) == 1
    assert received[0].message == "decorator"

def test_event_bus_dispatches_by_exact_type():
    bus = EventBus()
    received = []
    bus.subscribe(OtherEvent, received.append)

    bus.publish(MockEvent(message="ignored"))

    assert received == []

def test_event_bus_publish_without_subscribers_is_noop():
    EventBus().publish(MediaQueueStatusChanged(queue_status=MediaQueueStatus.IDLE))

def test_event_bus_callback_runs_on_publishing_thread():
    bus = EventBus()
    threads = []
    bus.subscribe(MockEvent, lambda e: threads.append(threading.current_thread().name))

    worker = threading.Thread(target=bus.publish, args=(MockEvent(message="x"),), name="publisher")
    worker.start()
    worker.join()

    assert threads == ["publisher"]

def test_event_bus_subscribe_during_publish_does_not_affect_current_dispatch():
    bus = EventBus()
    calls = []

    def first(event):
        calls.append("first")
        bus.subscribe(MockEvent, lambda e: calls.append("late"))

    bus.subscribe(MockEvent, first)
    bus.publish(MockEvent(message="one"))
    assert calls == ["first"]
    assert bus.subscriber_count(MockEvent) == 2
