"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides an in-memory container runtime for the policy tests.
"""
import sys
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

from image_janitor.models import CreationEvent, ImageId, ImageRef, ImageReferences, RemovalItem  # noqa: E402
from image_janitor.runtime import (  # noqa: E402
    ContainerRuntime,
    EventStream,
    RuntimeOperationError,
)


class FakeRuntime(ContainerRuntime):
    """In-memory ContainerRuntime.

    images maps image ID -> ImageReferences; containers maps image ID ->
    (running count, stopped count). Any operation name listed in
    failing is raised as a RuntimeOperationError.
    """

    def __init__(self):
        self.images: Dict[str, ImageReferences] = {}
        self.containers: Dict[str, List[int]] = {}
        self.failing: Set[str] = set()
        self.undeletable: Set[str] = set()
        self.removed: List[str] = []
        self.prune_calls = 0
        self.space_reclaimed = 0
        self.events: List[CreationEvent] = []

    # helpers
    def add_image(self, image_id: str, repo_tags=(), labels=None, running: int = 0, stopped: int = 0) -> ImageId:
        self.images[image_id] = ImageReferences(repo_tags=tuple(repo_tags), labels=dict(labels or {}))
        self.containers[image_id] = [running, stopped]
        return ImageId(image_id)

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise RuntimeOperationError(operation, Exception("simulated daemon failure"))

    # ContainerRuntime
    def ping(self) -> None:
        self._check("ping")

    def resolve_image(self, ref: str) -> Optional[ImageId]:
        self._check("resolve_image")
        if ref in self.images:
            return ImageId(ref)
        for image_id, references in self.images.items():
            if ref in references.repo_tags:
                return ImageId(image_id)
        return None

    def list_images(self) -> Set[ImageId]:
        self._check("list_images")
        return {ImageId(image_id) for image_id in self.images}

    def image_references(self, image_id: ImageId) -> ImageReferences:
        self._check("image_references")
        return self.images.get(image_id, ImageReferences())

    def containers_referencing(self, image_id: ImageId, include_stopped: bool) -> int:
        self._check("containers_all" if include_stopped else "containers_running")
        running, stopped = self.containers.get(image_id, [0, 0])
        return running + stopped if include_stopped else running

    def remove_image(self, image_id: ImageId, force: bool) -> List[RemovalItem]:
        self.removed.append(image_id)
        self._check("remove_image")
        if image_id not in self.images:
            raise RuntimeOperationError(f"remove image {image_id}", Exception("No such image"))
        if image_id in self.undeletable:
            return [RemovalItem(untagged=tag) for tag in self.images[image_id].repo_tags]
        references = self.images.pop(image_id)
        self.containers.pop(image_id, None)
        items = [RemovalItem(untagged=tag) for tag in references.repo_tags]
        items.append(RemovalItem(deleted=image_id))
        return items

    def prune_dangling(self) -> int:
        self.prune_calls += 1
        self._check("prune_dangling")
        return self.space_reclaimed

    def subscribe_creation_events(self) -> EventStream:
        return EventStream(list(self.events))


class FakeClock:
    """Settable clock returning unix seconds"""

    def __init__(self, now: float = 1_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def creation_event(ref: str) -> CreationEvent:
    return CreationEvent(image_ref=ImageRef(ref))


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def clock():
    return FakeClock()
