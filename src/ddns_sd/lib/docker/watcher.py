"""
Docker event watcher feeding container lifecycle messages to the worker queue
"""
import logging
import threading
import time
from queue import Queue
from typing import Callable, Optional

import docker
import requests
from docker.errors import DockerException, NotFound

from .container import Container

logger = logging.getLogger(__name__)

# Long enough that an idle event stream isn't constantly torn down
EVENT_READ_TIMEOUT = 3600


class DockerWatcher:
    """
    Follows the Docker event stream in a background thread

    Pushes ``("started", Container)``, ``("stopped", id)`` and
    ``("died", id, exit_code)`` onto the queue. If the watcher cannot
    run at all it pushes ``("terminate",)``.
    """

    def __init__(self, queue: Queue, config, client: Optional[docker.DockerClient] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.queue = queue
        self.config = config
        self._client = client
        self._sleep = sleep
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stream = None
        self.last_event_time: Optional[int] = None

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.DockerClient(base_url=self.config.docker_host, timeout=EVENT_READ_TIMEOUT)
        return self._client

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self.run, name="docker-watcher", daemon=True)
            self._thread.start()

    def shutdown(self, timeout: float = 5.0) -> None:
        with self._lock:
            if self._thread is None:
                return
            self._stop.set()
            stream = self._stream
            if stream is not None:
                try:
                    stream.close()
                except (OSError, DockerException) as e:
                    logger.debug(f"Error closing event stream: {e}")
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Docker watcher did not stop in time")
            self._thread = None

    def run(self) -> None:
        self.last_event_time = int(time.time())
        try:
            self.client
        except Exception as e:
            # Nothing can be watched without a client
            logger.error(f"Fatal error: {e}. Terminating.", exc_info=True)
            self.queue.put(("terminate",))
            return

        while not self._stop.is_set():
            try:
                self.process_events()
            except requests.exceptions.ReadTimeout:
                logger.debug(f"Event stream timed out; resuming from {self.last_event_time}")
            except (requests.exceptions.ConnectionError, DockerException) as e:
                if self._stop.is_set():
                    break
                logger.debug(f"Got connection error while listening for events: {e}", exc_info=True)
                self._sleep(1)
            except Exception as e:
                if self._stop.is_set():
                    break
                logger.error(f"Error while processing events: {e}; resuming from {self.last_event_time}",
                             exc_info=True)
                self._sleep(1)

    def process_events(self) -> None:
        logger.debug(f"Asking for events since {self.last_event_time}")
        stream = self.client.events(since=self.last_event_time, decode=True)
        self._stream = stream
        try:
            for event in stream:
                if self._stop.is_set():
                    break
                self.last_event_time = event.get("time", self.last_event_time)
                try:
                    item = self.queue_item(event)
                except (requests.exceptions.RequestException, DockerException):
                    raise
                except Exception as e:
                    # Skipped: resuming from its time would replay it
                    logger.error(f"Ignoring event {event!r} that could not be processed: {e}", exc_info=True)
                    continue
                if item is not None:
                    self.queue.put(item)
        finally:
            self._stream = None
            stream.close()

    def queue_item(self, event: dict) -> Optional[tuple]:
        """Translate one Docker event into a worker message, or None to ignore it"""
        if event.get("Type") != "container":
            return None
        action = event.get("Action")
        actor = event.get("Actor") or {}
        container_id = event.get("id") or actor.get("ID")
        logger.debug(f"Docker event: {event.get('Type')}.{action} on {container_id}")
        if not container_id:
            return None

        if action == "start":
            container = self.inspect(container_id)
            return ("started", container) if container is not None else None
        if action == "kill":
            return ("stopped", container_id)
        if action == "die":
            exit_code = (actor.get("Attributes") or {}).get("exitCode")
            if exit_code is None:
                return None
            return ("died", container_id, int(exit_code))
        return None

    def inspect(self, container_id: str) -> Optional[Container]:
        try:
            attrs = self.client.containers.get(container_id).attrs
        except NotFound:
            logger.debug(f"Container {container_id} went away before it could be inspected")
            return None
        return Container(attrs, self.config)
