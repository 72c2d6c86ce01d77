"""
Core data types shared by the policy engine and the runtime adapter.

Image IDs and image references are both strings on the wire, but they mean
different things: an ID is the stable, content-addressed identity assigned by
the daemon, a reference is a mutable ``repo:tag`` name that may point at
different IDs over time. They get distinct types so the two are never
compared with each other by accident.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NewType, Optional, Tuple

ImageId = NewType("ImageId", str)
ImageRef = NewType("ImageRef", str)

EXCLUDE_LABEL = "exclude"


@dataclass(frozen=True)
class ImageReferences:
    """Human-readable names and labels attached to an image"""

    repo_tags: Tuple[str, ...] = ()
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def exclude_label(self) -> Optional[str]:
        return self.labels.get(EXCLUDE_LABEL)


@dataclass(frozen=True)
class RemovalItem:
    """One line of a daemon image-removal response.

    Exactly one of ``deleted`` / ``untagged`` is set.
    """

    deleted: Optional[str] = None
    untagged: Optional[str] = None


@dataclass(frozen=True)
class CreationEvent:
    """A container ``create`` event, reduced to the image it was created from"""

    image_ref: ImageRef
    container_id: Optional[str] = None
    time: Optional[int] = None


@dataclass(frozen=True)
class ExclusionRules:
    """Configured protection rules; every list is matched with OR semantics"""

    image_name_prefix: Tuple[str, ...] = ()
    image_name_suffix: Tuple[str, ...] = ()
    image_tag_prefix: Tuple[str, ...] = ()
    image_tag_suffix: Tuple[str, ...] = ()
    image_label: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not any(
            (
                self.image_name_prefix,
                self.image_name_suffix,
                self.image_tag_prefix,
                self.image_tag_suffix,
                self.image_label,
            )
        )


@dataclass(frozen=True)
class PolicyConfig:
    """Process-wide deletion policy, immutable after startup"""

    retention_window: int = 7 * 24 * 60 * 60
    enforcing: bool = False
    prune_dangling: bool = True
    dry_run: bool = False
    exclusions: ExclusionRules = field(default_factory=ExclusionRules)


class Decision(Enum):
    """Result of a single deletion attempt"""

    EXCLUDED = "excluded"
    RUNNING = "running"
    STOPPED = "stopped"
    PROBE_FAILED = "probe_failed"
    RECENT = "recent"
    DRY_RUN = "dry_run"
    DELETED = "deleted"
    FAILED = "failed"
    GONE = "gone"


@dataclass
class SweepSummary:
    """Counters for one sweep, logged once the sweep is finished"""

    name: str
    examined: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    would_delete: int = 0
    gone: int = 0
    space_reclaimed: int = 0
    decisions: List[Tuple[ImageId, Decision]] = field(default_factory=list)

    def record(self, image_id: ImageId, decision: Decision) -> None:
        self.examined += 1
        self.decisions.append((image_id, decision))
        if decision is Decision.DELETED:
            self.deleted += 1
        elif decision is Decision.FAILED:
            self.failed += 1
        elif decision is Decision.DRY_RUN:
            self.would_delete += 1
        elif decision is Decision.GONE:
            self.gone += 1
        else:
            self.skipped += 1
