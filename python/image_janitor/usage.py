"""
Container usage probes.

Both probes fail safe: when the daemon cannot be asked, the image counts as
referenced, so a failed query never leads to a deletion that would not have
happened otherwise.
"""

from image_janitor.models import ImageId
from image_janitor.runtime import ContainerRuntime, RuntimeOperationError
from image_janitor.utils.logging_utils import get_logger

logger = get_logger(__name__)


class UsageProber:
    """Answers "is this image still used by a container?" """

    def __init__(self, runtime: ContainerRuntime):
        self.runtime = runtime

    def _referenced(self, image_id: ImageId, include_stopped: bool) -> bool:
        try:
            return self.runtime.containers_referencing(image_id, include_stopped=include_stopped) > 0
        except RuntimeOperationError as e:
            scope = "running or stopped" if include_stopped else "running"
            logger.warning(f"    Could not list {scope} containers for {image_id}, treating as in use: {e}")
            return True

    def has_running(self, image_id: ImageId) -> bool:
        """At least one running container uses the image"""
        return self._referenced(image_id, include_stopped=False)

    def has_stopped_only(self, image_id: ImageId) -> bool:
        """No running container uses the image, but a stopped one still does.

        Evaluated as two separate queries: running-only, then running-or-stopped.
        """
        return not self._referenced(image_id, include_stopped=False) and self._referenced(
            image_id, include_stopped=True
        )
