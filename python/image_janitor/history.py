"""In-memory record of when each image was last seen in a creation event."""

from typing import Dict, Iterator, List, Optional, Tuple

from image_janitor.models import ImageId


class ImageHistory:
    """Maps image ID to the unix timestamp of its most recent creation event.

    Entries are only added or refreshed by touch() and only dropped by
    remove(), once the image is confirmed gone from the daemon.
    """

    def __init__(self):
        self._last_seen: Dict[ImageId, int] = {}

    def touch(self, image_id: ImageId, now: int) -> None:
        self._last_seen[image_id] = now

    def remove(self, image_id: ImageId) -> bool:
        return self._last_seen.pop(image_id, None) is not None

    def last_seen(self, image_id: ImageId) -> Optional[int]:
        return self._last_seen.get(image_id)

    def snapshot(self) -> List[Tuple[ImageId, int]]:
        """Copy of all entries, safe to iterate while entries are removed"""
        return list(self._last_seen.items())

    def __contains__(self, image_id: object) -> bool:
        return image_id in self._last_seen

    def __len__(self) -> int:
        return len(self._last_seen)

    def __iter__(self) -> Iterator[ImageId]:
        return iter(list(self._last_seen))
