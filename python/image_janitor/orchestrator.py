"""
Event loop: turns container creation events into history updates and sweeps.

Events are handled strictly one at a time, in arrival order, on the calling
thread. The loop ends when the event stream closes cleanly (exit code 0) or
breaks (exit code 2).
"""

import time
from enum import Enum
from typing import Callable, List, Optional

from image_janitor.history import ImageHistory
from image_janitor.models import CreationEvent, ImageId, PolicyConfig, SweepSummary
from image_janitor.policy import DeletionPolicy
from image_janitor.runtime import ContainerRuntime, EventStream, EventStreamError, RuntimeOperationError
from image_janitor.sweeps import SweepScheduler
from image_janitor.usage import UsageProber
from image_janitor.utils.error_utils import create_event_stream_error
from image_janitor.utils.logging_utils import get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_STARTUP_FAILURE = 1
EXIT_STREAM_FAILURE = 2


class JanitorState(Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class ImageJanitor:
    """Owns the history and policy components for one daemon"""

    def __init__(
        self,
        config: PolicyConfig,
        runtime: ContainerRuntime,
        clock: Callable[[], float] = time.time,
        start_time: Optional[int] = None,
    ):
        """Initialize the janitor.

        Args:
            config: Immutable deletion policy
            runtime: Container runtime to observe and clean
            clock: Returns the current unix time; injectable for tests
            start_time: Process start timestamp (defaults to now)
        """
        self.config = config
        self.runtime = runtime
        self.clock = clock
        self.start_time = self.now() if start_time is None else start_time
        self.history = ImageHistory()
        self.policy = DeletionPolicy(config, runtime, self.history, UsageProber(runtime))
        self.scheduler = SweepScheduler(config, runtime, self.history, self.policy, self.start_time)
        self.state = JanitorState.STOPPED
        self._stream: Optional[EventStream] = None

    def now(self) -> int:
        return int(self.clock())

    def handle_event(self, event: CreationEvent) -> List[SweepSummary]:
        """Record a creation event and run the sweeps it triggers.

        Returns:
            Summaries of the sweeps that ran; empty if the event was dropped
        """
        logger.info(f"Handle event for image '{event.image_ref}'")

        try:
            image_id = self.runtime.resolve_image(event.image_ref)
        except RuntimeOperationError as e:
            logger.warning(f"Could not resolve image '{event.image_ref}', dropping event: {e}")
            return []

        if image_id is None:
            logger.info("Could not find image id")
            return []

        return self.observe(image_id)

    def observe(self, image_id: ImageId) -> List[SweepSummary]:
        now = self.now()
        self.history.touch(image_id, now)
        return self.scheduler.run(now)

    def run(self, stream: EventStream) -> int:
        """Consume events until the stream ends.

        Returns:
            Process exit code
        """
        self._stream = stream
        self.state = JanitorState.RUNNING
        logger.info("Waiting for container create events")
        try:
            for event in stream:
                self.handle_event(event)
        except EventStreamError as e:
            endpoint = getattr(self.runtime, "docker_host", None) or "the container runtime"
            logger.error(str(create_event_stream_error(endpoint, e)))
            return EXIT_STREAM_FAILURE
        finally:
            self.state = JanitorState.STOPPED
            self._stream = None

        logger.info("Event stream closed")
        return EXIT_OK

    def stop(self) -> None:
        """Close the event stream; run() then returns as on a clean end of stream"""
        if self._stream is not None:
            logger.info("Stopping, closing event stream")
            self._stream.close()
