"""
Container runtime interface consumed by the policy engine.

The engine never talks to a daemon directly; it only calls the methods of
ContainerRuntime. utils/docker_client.py provides the Docker implementation
and the test suite provides an in-memory one.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Iterator, List, Optional, Set

from image_janitor.models import CreationEvent, ImageId, ImageReferences, RemovalItem


class RuntimeOperationError(Exception):
    """Raised when a daemon call fails (API error, transport error, timeout)"""

    def __init__(self, operation: str, error: Optional[Exception] = None):
        self.operation = operation
        self.error = error
        message = f"{operation} failed"
        if error is not None:
            message = f"{message}: {error}"
        super().__init__(message)


class ImageNotFoundError(RuntimeOperationError):
    """Raised when an image does not exist (never did, or was already deleted)"""


class RuntimeUnavailableError(RuntimeOperationError):
    """Raised when the daemon cannot be reached at all"""


class EventStreamError(Exception):
    """Raised when the event stream breaks without a clean close"""


class EventStream:
    """Lazy, finite-until-closed sequence of container creation events.

    Iterating yields CreationEvent records until the producer is exhausted
    (clean end of stream) or raises EventStreamError. close() may be called
    from another thread or a signal handler; once closed, any error raised
    by the producer while unwinding is treated as a clean end.
    """

    def __init__(self, events: Iterable[CreationEvent], on_close: Optional[Callable[[], None]] = None):
        self._events = events
        self._on_close = on_close
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __iter__(self) -> Iterator[CreationEvent]:
        try:
            for event in self._events:
                if self.closed:
                    return
                yield event
        except EventStreamError:
            if self.closed:
                return
            raise

    def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        if self._on_close is not None:
            self._on_close()


class ContainerRuntime(ABC):
    """Operations the janitor needs from a container runtime"""

    @abstractmethod
    def ping(self) -> None:
        """Check the daemon is reachable.

        Raises:
            RuntimeUnavailableError: if it is not
        """

    @abstractmethod
    def resolve_image(self, ref: str) -> Optional[ImageId]:
        """Map an image reference (name, name:tag or ID) to its image ID.

        Returns:
            The image ID, or None if no such image exists
        """

    @abstractmethod
    def list_images(self) -> Set[ImageId]:
        """IDs of every (non-intermediate) image known to the daemon"""

    @abstractmethod
    def image_references(self, image_id: ImageId) -> ImageReferences:
        """repo:tag names and labels of an image; empty if the image is gone"""

    @abstractmethod
    def containers_referencing(self, image_id: ImageId, include_stopped: bool) -> int:
        """Number of containers created from the image.

        Args:
            image_id: Image to look for
            include_stopped: Count stopped containers too, not only running ones
        """

    @abstractmethod
    def remove_image(self, image_id: ImageId, force: bool) -> List[RemovalItem]:
        """Remove (or untag) an image"""

    @abstractmethod
    def prune_dangling(self) -> int:
        """Remove all dangling images; returns bytes reclaimed"""

    @abstractmethod
    def subscribe_creation_events(self) -> EventStream:
        """Start streaming container creation events"""
