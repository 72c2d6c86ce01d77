"""
Sweeps run after every processed creation event.

- age sweep: images from history that have not been seen for longer than
  the retention window (always runs)
- dangling sweep: daemon-side prune of untagged, unreferenced images
  (only with prune_dangling)
- grandfather sweep: images the daemon knows about but that were never seen
  in a creation event (only in enforcing mode, and only once the process has
  been up for a full retention window)
"""

from typing import List

from image_janitor.history import ImageHistory
from image_janitor.models import Decision, PolicyConfig, SweepSummary
from image_janitor.policy import DeletionPolicy
from image_janitor.runtime import ContainerRuntime, RuntimeOperationError
from image_janitor.utils.logging_utils import get_logger

logger = get_logger(__name__)


def sizeof_fmt(num: float, suffix: str = "B") -> str:
    for unit in ("", "Ki", "Mi", "Gi", "Ti"):
        if abs(num) < 1024.0:
            return f"{num:3.1f} {unit}{suffix}"
        num /= 1024.0
    return f"{num:.1f} Pi{suffix}"


class SweepScheduler:
    """Runs the age, dangling and grandfather sweeps"""

    def __init__(
        self,
        config: PolicyConfig,
        runtime: ContainerRuntime,
        history: ImageHistory,
        policy: DeletionPolicy,
        start_time: int,
    ):
        self.config = config
        self.runtime = runtime
        self.history = history
        self.policy = policy
        self.start_time = start_time

    def age_sweep(self, now: int) -> SweepSummary:
        """Try to delete every tracked image unseen for longer than the retention window"""
        summary = SweepSummary(name="age")
        cutoff = now - self.config.retention_window
        logger.info("Searching for old images:")

        for image_id, last_seen in self.history.snapshot():
            logger.info(f"  trying image: {image_id}")
            if last_seen < cutoff:
                logger.info("    Image is too old. Trying to delete.")
                summary.record(image_id, self.policy.try_delete(image_id))
            else:
                logger.info("    Image is too new. Skipping.")
                summary.record(image_id, Decision.RECENT)

        return summary

    def dangling_sweep(self) -> SweepSummary:
        """Prune dangling images; does not go through the deletion policy or touch history"""
        summary = SweepSummary(name="dangling")
        if self.config.dry_run:
            logger.info("DRY RUN: skipping prune of dangling images")
            return summary

        logger.info("Trying to clean dangling images")
        try:
            summary.space_reclaimed = self.runtime.prune_dangling()
        except RuntimeOperationError as e:
            logger.error(f"  Failed to prune dangling images: {e}")
            summary.failed += 1
            return summary

        logger.info(f"  Space reclaimed: {sizeof_fmt(summary.space_reclaimed)}")
        return summary

    def grandfather_due(self, now: int) -> bool:
        """Enforcing mode, and the process has been up for longer than the retention window"""
        return self.config.enforcing and now > self.start_time + self.config.retention_window

    def grandfather_sweep(self) -> SweepSummary:
        """Try to delete every daemon image that has no history entry"""
        summary = SweepSummary(name="grandfather")
        logger.info("Trying to delete images without received create event")

        try:
            image_ids = self.runtime.list_images()
        except RuntimeOperationError as e:
            logger.error(f"  Failed to list images: {e}")
            summary.failed += 1
            return summary

        for image_id in sorted(image_ids):
            logger.info(f"  trying image: {image_id}")
            if image_id in self.history:
                logger.info("    Image is not grandfathered. Skipping!")
                continue
            summary.record(image_id, self.policy.try_delete(image_id))

        return summary

    def run(self, now: int) -> List[SweepSummary]:
        """Run all sweeps that apply at time now"""
        summaries = [self.age_sweep(now)]

        if self.config.prune_dangling:
            summaries.append(self.dangling_sweep())

        if self.grandfather_due(now):
            summaries.append(self.grandfather_sweep())

        for summary in summaries:
            log_summary(summary, dry_run=self.config.dry_run)

        return summaries


def log_summary(summary: SweepSummary, dry_run: bool = False) -> None:
    """Log a standardized sweep summary"""
    mode = "DRY RUN: " if dry_run else ""
    if summary.name == "dangling":
        if summary.failed:
            logger.info(f"📊 {mode}Dangling sweep: prune failed")
        elif not dry_run:
            logger.info(f"📊 Dangling sweep: reclaimed {sizeof_fmt(summary.space_reclaimed)}")
        return

    parts = [f"examined {summary.examined}"]
    if dry_run:
        parts.append(f"would delete {summary.would_delete}")
    else:
        parts.append(f"deleted {summary.deleted}")
    parts.append(f"skipped {summary.skipped}")
    if summary.gone:
        parts.append(f"already gone {summary.gone}")
    if summary.failed:
        parts.append(f"failed {summary.failed}")
    logger.info(f"📊 {mode}{summary.name.capitalize()} sweep: " + ", ".join(parts))
