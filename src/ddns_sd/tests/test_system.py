"""
Tests for the worker that drives the backends
"""
from queue import Empty, Queue
from unittest.mock import Mock, call

import pytest
from docker.errors import DockerException

from ddns_sd.lib.docker.container import Container
from ddns_sd.lib.system import System

from conftest import CONTAINER_ID, container_attrs, rr, service_labels


@pytest.fixture
def backend():
    backend = Mock()
    backend.name = "mock"
    backend.records_in_zone.return_value = []
    return backend


@pytest.fixture
def docker_client():
    client = Mock()
    client.containers.list.return_value = []
    return client


@pytest.fixture
def system(config, backend, docker_client):
    return System(config, backends=[backend], docker_client=docker_client, queue=Queue(), watcher=Mock())


@pytest.fixture
def container(config):
    return Container(container_attrs(labels=service_labels(port="80")), config)


def suppressed(backend):
    return [c.args[0] for c in backend.suppress.call_args_list]


def published(backend):
    return [c.args[0] for c in backend.publish.call_args_list]


def test_started_publishes_records(system, backend, container):
    system.handle(("started", container))

    assert published(backend) == container.dns_records()
    assert system.containers[CONTAINER_ID] is container


def test_clean_exit_suppresses_records(system, backend, container):
    system.handle(("started", container))
    system.handle(("died", CONTAINER_ID, 0))

    assert [r.type for r in suppressed(backend)] == ["SRV", "A"]
    assert CONTAINER_ID not in system.containers


def test_crash_leaves_records_in_place(system, backend, container):
    system.handle(("started", container))
    system.handle(("died", CONTAINER_ID, 137))

    backend.suppress.assert_not_called()


def test_stopped_container_suppressed_whatever_the_exit_code(system, backend, container):
    system.handle(("started", container))
    system.handle(("stopped", CONTAINER_ID))
    system.handle(("died", CONTAINER_ID, 137))

    assert len(suppressed(backend)) == 2


def test_unknown_container_events(system, backend):
    system.handle(("stopped", "unknown"))
    system.handle(("died", "unknown", 0))

    backend.suppress.assert_not_called()


def test_suppress_all(system, backend, container):
    system.handle(("started", container))

    system.handle(("suppress_all",))

    assert len(suppressed(backend)) == 2
    backend.suppress_shared_records.assert_called_once_with()


def test_terminate(system):
    assert system.handle(("terminate",)) is False
    assert system.handle(("bogus",)) is True


def test_handler_errors_are_contained(system, backend, container):
    backend.publish.side_effect = RuntimeError("backend exploded")
    assert system.handle(("started", container)) is True


def test_shutdown_messages(system):
    system.shutdown()
    assert [system.queue.get_nowait(), system.queue.get_nowait()] == [("suppress_all",), ("terminate",)]

    system.shutdown(suppress_records=False)
    assert system.queue.get_nowait() == ("terminate",)
    assert system.queue.empty()


@pytest.mark.parametrize("record,owned", [
    (rr("speccy", "A", "192.0.2.42"), True),
    (rr("0123456789ab.speccy", "A", "172.17.0.2"), True),
    (rr("192-0-2-99.speccy", "A", "192.0.2.99"), True),
    (rr("speccy", "AAAA", "2001:db8::1"), True),
    (rr("notspeccy", "A", "192.0.2.1"), False),
    (rr("speccy.other", "A", "192.0.2.1"), False),
    (rr("fred._http._tcp", "SRV", 0, 0, 80, "abc.speccy"), True),
    (rr("fred._http._tcp", "SRV", 0, 0, 80, "other"), False),
    (rr("fred._http._tcp", "TXT", ""), False),
    (rr("_http._tcp", "PTR", "fred._http._tcp"), False),
    (rr("www", "CNAME", "abc.speccy"), False),
])
def test_owns(system, record, owned):
    assert system.owns(record) is owned


def test_reconcile_computes_the_difference(system, backend, container):
    system.containers = {container.id: container}
    desired = container.dns_records()
    stale_a = rr("deadbeef0000.speccy", "A", "172.17.0.9")
    stale_srv = rr("old._http._tcp", "SRV", 0, 0, 80, "deadbeef0000.speccy")
    backend.records_in_zone.return_value = [
        rr("speccy", "A", "192.0.2.42"),
        desired[0],
        stale_a,
        stale_srv,
        rr("old._http._tcp", "TXT", ""),
        rr("_http._tcp", "PTR", "old._http._tcp"),
        rr("other", "A", "192.0.2.1"),
        rr("x._http._tcp", "SRV", 0, 0, 80, "other"),
    ]

    system.reconcile(backend)

    assert suppressed(backend) == [stale_a, stale_srv]
    assert published(backend) == desired[1:]


def test_reconcile_publishes_host_record(system, backend):
    system.reconcile(backend)
    assert published(backend) == [rr("speccy", "A", "192.0.2.42")]


def test_reconcile_skips_unreadable_backend(system, backend):
    backend.records_in_zone.side_effect = RuntimeError("zone unavailable")
    system.reconcile(backend)
    backend.publish.assert_not_called()


def test_reconcile_all_lists_running_containers(system, backend, docker_client):
    docker_client.containers.list.return_value = [
        Mock(attrs=container_attrs(labels=service_labels(port="80"))),
    ]

    system.reconcile_all()

    assert list(system.containers) == [CONTAINER_ID]
    backend.records_in_zone.assert_called_once_with()


def test_reconcile_all_docker_failure(system, backend, docker_client):
    docker_client.containers.list.side_effect = DockerException("no daemon")
    system.reconcile_all()
    backend.records_in_zone.assert_not_called()


def advancing_get(now, replies, step):
    """A queue.get that moves the clock on by step seconds per call"""
    def get(timeout=None):
        now[0] += step
        reply = replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply
    return get


def test_run(config, backend, docker_client):
    config.reconcile_interval = 30
    now = [0.0]
    queue = Mock()
    queue.get.side_effect = advancing_get(now, [Empty(), ("terminate",)], 30)
    watcher = Mock()
    system = System(config, backends=[backend], docker_client=docker_client, queue=queue, watcher=watcher,
                    clock=lambda: now[0])

    system.run()

    watcher.start.assert_called_once_with()
    watcher.shutdown.assert_called_once_with()
    assert backend.publish.call_args_list[0] == call(rr("speccy", "A", "192.0.2.42"))
    # Startup reconciliation plus one periodic pass
    assert docker_client.containers.list.call_count == 2
    queue.get.assert_called_with(timeout=30)


def test_periodic_reconcile_runs_while_messages_keep_arriving(config, backend, docker_client):
    config.reconcile_interval = 30
    now = [0.0]
    queue = Mock()
    queue.get.side_effect = advancing_get(now, [("stopped", "x"), ("stopped", "y"), ("terminate",)], 20)
    system = System(config, backends=[backend], docker_client=docker_client, queue=queue, watcher=Mock(),
                    clock=lambda: now[0])

    system.run()

    # Startup reconciliation plus one pass once the deadline passed at t=40
    assert docker_client.containers.list.call_count == 2
    assert queue.get.call_args_list[:2] == [call(timeout=30), call(timeout=10.0)]


def test_run_without_interval_blocks_on_queue(config, backend, docker_client):
    config.reconcile_interval = 0
    queue = Mock()
    queue.get.side_effect = [("stopped", "x"), ("terminate",)]
    system = System(config, backends=[backend], docker_client=docker_client, queue=queue, watcher=Mock())

    system.run()

    assert docker_client.containers.list.call_count == 1
    queue.get.assert_called_with(timeout=None)
