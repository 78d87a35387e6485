"""
The single worker that keeps every backend in line with the running containers
"""
import logging
import time
from queue import Empty, Queue
from typing import Callable, Dict, List, Optional

import docker
import requests
from docker.errors import DockerException

from .config import Config
from .dns.name import DomainName
from .docker.container import Container
from .docker.watcher import DockerWatcher
from .factory import BackendFactory

logger = logging.getLogger(__name__)


class System:
    """
    Consumes lifecycle messages and drives the backends

    Only the thread calling ``run`` touches the container table or calls
    into a backend; everything else talks to it through the queue.
    """

    def __init__(self, config: Config, backends: Optional[List] = None,
                 docker_client: Optional[docker.DockerClient] = None,
                 queue: Optional[Queue] = None, watcher: Optional[DockerWatcher] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.backends = backends if backends is not None else BackendFactory.create_all(config)
        self.queue = queue if queue is not None else Queue()
        self._docker_client = docker_client
        self.watcher = watcher if watcher is not None else DockerWatcher(self.queue, config, client=docker_client)
        self.containers: Dict[str, Container] = {}
        self.host_name = DomainName([config.hostname])
        self._clock = clock

    @property
    def docker_client(self) -> docker.DockerClient:
        if self._docker_client is None:
            self._docker_client = docker.DockerClient(base_url=self.config.docker_host)
        return self._docker_client

    def run(self) -> None:
        """Run until a terminate message arrives"""
        logger.info(f"Starting for {self.config.hostname}.{self.config.base_domain} "
                    f"with backends {', '.join(b.name for b in self.backends)}")
        self.watcher.start()
        try:
            host_record = self.config.host_dns_record
            if host_record is not None:
                for backend in self.backends:
                    backend.publish(host_record)
            self.reconcile_all()

            interval = self.config.reconcile_interval
            # Kept as a deadline so a steady stream of messages cannot postpone it
            deadline = self._clock() + interval if interval else None
            while True:
                timeout = None if deadline is None else max(0.0, deadline - self._clock())
                try:
                    item = self.queue.get(timeout=timeout)
                except Empty:
                    item = None
                if item is not None and not self.handle(item):
                    break
                if deadline is not None and self._clock() >= deadline:
                    logger.info("Running periodic reconciliation")
                    self.reconcile_all()
                    deadline = self._clock() + interval
        finally:
            self.watcher.shutdown()
        logger.info("Terminated")

    def shutdown(self, suppress_records: bool = True) -> None:
        """Ask the worker to withdraw this host's records and stop"""
        if suppress_records:
            self.queue.put(("suppress_all",))
        self.queue.put(("terminate",))

    def handle(self, item: tuple) -> bool:
        """
        Process one queue message

        Returns:
            False once the worker should stop
        """
        kind, *args = item
        logger.debug(f"Processing message {kind}")
        try:
            if kind == "containers":
                self.containers = {c.id: c for c in args[0]}
                for backend in self.backends:
                    self.reconcile(backend)
            elif kind == "started":
                self._started(args[0])
            elif kind == "stopped":
                container = self.containers.get(args[0])
                if container is not None:
                    container.stopped = True
            elif kind == "died":
                self._died(*args)
            elif kind == "suppress_all":
                self._suppress_all()
            elif kind == "terminate":
                return False
            else:
                logger.error(f"Unknown message {item!r}; ignoring")
        except Exception as e:
            logger.error(f"Error while processing {kind} message: {e}", exc_info=True)
        return True

    def _started(self, container: Container) -> None:
        logger.info(f"Container {container.short_id} ({container.name}) started")
        self.containers[container.id] = container
        for backend in self.backends:
            container.publish_records(backend)

    def _died(self, container_id: str, exit_code: int) -> None:
        container = self.containers.pop(container_id, None)
        if container is None:
            logger.debug(f"Unknown container {container_id} died; nothing to do")
            return
        if exit_code == 0 or container.stopped:
            logger.info(f"Container {container.short_id} ({container.name}) stopped; suppressing its records")
            for backend in self.backends:
                container.suppress_records(backend)
        else:
            # Likely to be restarted; flapping records would be worse than stale ones
            logger.warning(
                f"Container {container.short_id} ({container.name}) exited with code {exit_code} "
                f"without being stopped; leaving its records in place"
            )

    def _suppress_all(self) -> None:
        for container in self.containers.values():
            for backend in self.backends:
                container.suppress_records(backend)
        for backend in self.backends:
            backend.suppress_shared_records()

    def reconcile_all(self) -> None:
        """Read the running containers and reconcile every backend against them"""
        try:
            containers = [Container(c.attrs, self.config) for c in self.docker_client.containers.list()]
        except (DockerException, requests.exceptions.RequestException) as e:
            logger.error(f"Could not list running containers: {e}")
            return
        self.handle(("containers", containers))

    def owns(self, rr) -> bool:
        """Whether a zone record was created on behalf of this host"""
        if rr.type in ("A", "AAAA"):
            name = rr.name
        elif rr.type == "SRV":
            name = rr.data.target
        else:
            return False
        return name == self.host_name or name.is_subdomain_of(self.host_name)

    def desired_records(self) -> List:
        records = []
        for container in self.containers.values():
            records.extend(container.dns_records())
        host_record = self.config.host_dns_record
        if host_record is not None:
            records.append(host_record)
        return records

    def reconcile(self, backend) -> None:
        """Bring one backend in line with the known containers"""
        logger.info(f"Reconciling backend {backend.name}")
        try:
            live = [rr for rr in backend.records_in_zone() if self.owns(rr)]
        except Exception as e:
            logger.error(f"Could not read records from backend {backend.name}: {e}", exc_info=True)
            return

        desired = self.desired_records()
        desired_set = set(desired)
        live_set = set(live)

        to_delete = [rr for rr in live if rr not in desired_set and rr.type not in ("TXT", "PTR")]
        to_create = []
        for rr in desired:
            if rr not in live_set and rr not in to_create:
                to_create.append(rr)

        logger.info(f"Backend {backend.name}: {len(to_delete)} records to remove, {len(to_create)} to publish")
        for rr in to_delete:
            backend.suppress(rr)
        for rr in to_create:
            backend.publish(rr)
