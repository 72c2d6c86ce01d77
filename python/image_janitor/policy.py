"""
Deletion policy: decide whether one image may be removed, and remove it.

Checks run in a fixed order and the first one that applies wins:

1. the image matches an exclusion rule -> skip
2. a running container uses it -> skip
3. only stopped containers use it and enforcing mode is off -> skip
4. otherwise force-remove it

After a removal attempt, successful or not, the image is looked up again by
ID. Only when the daemon no longer knows it is its history entry dropped;
anything still present is retried on a later sweep.
"""

from typing import Optional

from image_janitor.exclusion import is_excluded
from image_janitor.history import ImageHistory
from image_janitor.models import Decision, ImageId, PolicyConfig
from image_janitor.runtime import ContainerRuntime, RuntimeOperationError
from image_janitor.usage import UsageProber
from image_janitor.utils.logging_utils import get_logger

logger = get_logger(__name__)


class DeletionPolicy:
    """Applies the deletion policy to single images"""

    def __init__(
        self,
        config: PolicyConfig,
        runtime: ContainerRuntime,
        history: ImageHistory,
        prober: Optional[UsageProber] = None,
    ):
        self.config = config
        self.runtime = runtime
        self.history = history
        self.prober = prober or UsageProber(runtime)

    def _is_gone(self, image_id: ImageId) -> bool:
        """True only if the daemon positively reports the image as missing"""
        try:
            return self.runtime.resolve_image(image_id) is None
        except RuntimeOperationError as e:
            logger.warning(f"    Could not look up {image_id}: {e}")
            return False

    def _forget_if_gone(self, image_id: ImageId) -> bool:
        if not self._is_gone(image_id):
            return False
        logger.info("    Image seems to be deleted")
        if not self.config.dry_run:
            self.history.remove(image_id)
        return True

    def try_delete(self, image_id: ImageId) -> Decision:
        """Delete the image if the policy allows it.

        Args:
            image_id: ID of the image to consider

        Returns:
            The Decision taken for this image
        """
        if self._forget_if_gone(image_id):
            return Decision.GONE

        try:
            references = self.runtime.image_references(image_id)
        except RuntimeOperationError as e:
            logger.warning(f"    Could not inspect {image_id}, skipping: {e}")
            return Decision.PROBE_FAILED

        if is_excluded(self.config.exclusions, references):
            logger.info("    Image is excluded from deletion. Skipping!")
            return Decision.EXCLUDED

        if self.prober.has_running(image_id):
            logger.info("    Some containers are running. Skipping!")
            return Decision.RUNNING

        if not self.config.enforcing and self.prober.has_stopped_only(image_id):
            logger.info("    Some containers are stopped. Skipping!")
            return Decision.STOPPED

        if self.config.dry_run:
            logger.info(f"    DRY RUN: would delete {image_id} ({', '.join(references.repo_tags) or '<untagged>'})")
            return Decision.DRY_RUN

        try:
            for item in self.runtime.remove_image(image_id, force=True):
                if item.deleted:
                    logger.info(f"    Deleted   : {item.deleted}")
                else:
                    logger.info(f"    Untagged  : {item.untagged}")
        except RuntimeOperationError as e:
            # The daemon may have untagged part of the image before failing
            logger.error(f"    Failed to remove {image_id}: {e}")

        if self._forget_if_gone(image_id):
            return Decision.DELETED
        return Decision.FAILED
