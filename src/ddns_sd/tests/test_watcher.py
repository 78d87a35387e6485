"""
Tests for the Docker event watcher
"""
from queue import Queue
from unittest.mock import Mock, patch

import pytest
import requests
from docker.errors import DockerException, NotFound

from ddns_sd.lib.docker.container import Container
from ddns_sd.lib.docker.watcher import DockerWatcher

from conftest import CONTAINER_ID, container_attrs


class FakeStream:
    def __init__(self, events):
        self.events = events
        self.closed = False

    def __iter__(self):
        return iter(self.events)

    def close(self):
        self.closed = True


def event(action, **attributes):
    return {
        "Type": "container",
        "Action": action,
        "id": CONTAINER_ID,
        "Actor": {"ID": CONTAINER_ID, "Attributes": attributes},
        "time": 1700000000,
    }


@pytest.fixture
def client():
    client = Mock()
    client.containers.get.return_value = Mock(attrs=container_attrs())
    return client


@pytest.fixture
def watcher(config, client):
    return DockerWatcher(Queue(), config, client=client, sleep=Mock())


def drain(queue):
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


def test_start_event_carries_container(watcher, client):
    kind, container = watcher.queue_item(event("start"))

    assert kind == "started"
    assert isinstance(container, Container)
    assert container.id == CONTAINER_ID
    client.containers.get.assert_called_once_with(CONTAINER_ID)


def test_start_of_vanished_container(watcher, client):
    client.containers.get.side_effect = NotFound("gone")
    assert watcher.queue_item(event("start")) is None


def test_kill_event(watcher):
    assert watcher.queue_item(event("kill", signal="15")) == ("stopped", CONTAINER_ID)


def test_die_event(watcher):
    assert watcher.queue_item(event("die", exitCode="137")) == ("died", CONTAINER_ID, 137)


@pytest.mark.parametrize("item", [
    event("pause"),
    event("die"),
    {"Type": "network", "Action": "connect", "Actor": {"ID": "n1"}},
    {"Type": "container", "Action": "start", "Actor": {}},
])
def test_ignored_events(watcher, item):
    assert watcher.queue_item(item) is None


def test_process_events_resumes_from_last_event(watcher, client):
    stream = FakeStream([event("kill"), event("die", exitCode="0")])
    client.events.return_value = stream
    watcher.last_event_time = 1600000000

    watcher.process_events()

    client.events.assert_called_once_with(since=1600000000, decode=True)
    assert watcher.last_event_time == 1700000000
    assert drain(watcher.queue) == [("stopped", CONTAINER_ID), ("died", CONTAINER_ID, 0)]
    assert stream.closed


def test_run_survives_timeouts_and_connection_errors(watcher, client):
    calls = []

    def events(since, decode):
        calls.append(since)
        if len(calls) == 1:
            raise requests.exceptions.ReadTimeout("idle")
        if len(calls) == 2:
            raise requests.exceptions.ConnectionError("refused")
        if len(calls) == 3:
            return FakeStream([event("kill")])
        watcher._stop.set()
        raise DockerException("closed")

    client.events.side_effect = events

    watcher.run()

    assert len(calls) == 4
    watcher._sleep.assert_called_once_with(1)
    assert drain(watcher.queue) == [("stopped", CONTAINER_ID)]


def test_run_terminates_worker_when_client_cannot_be_created(config):
    watcher = DockerWatcher(Queue(), config, sleep=Mock())
    with patch("docker.DockerClient", side_effect=DockerException("bad DOCKER_HOST")):
        watcher.run()

    assert drain(watcher.queue) == [("terminate",)]


def test_malformed_event_is_skipped(watcher, client):
    calls = []

    def events(since, decode):
        calls.append(since)
        if len(calls) == 1:
            return FakeStream([event("die", exitCode="segfault"), event("kill")])
        watcher._stop.set()
        raise DockerException("closed")

    client.events.side_effect = events

    watcher.run()

    assert drain(watcher.queue) == [("stopped", CONTAINER_ID)]


def test_unexpected_error_keeps_listening(watcher, client):
    calls = []

    def events(since, decode):
        calls.append(since)
        if len(calls) == 1:
            raise KeyError("Id")
        if len(calls) == 2:
            return FakeStream([event("kill")])
        watcher._stop.set()
        raise DockerException("closed")

    client.events.side_effect = events

    watcher.run()

    watcher._sleep.assert_called_once_with(1)
    assert drain(watcher.queue) == [("stopped", CONTAINER_ID)]


def test_start_and_shutdown(watcher, client):
    def events(since, decode):
        watcher._stop.wait(5)
        return FakeStream([])

    client.events.side_effect = events

    watcher.start()
    assert watcher._thread.is_alive()
    watcher.shutdown()

    assert watcher._thread is None
