"""
Docker client for the image janitor.

This module implements ContainerRuntime on top of the Docker SDK. Every
daemon call goes through _call(), which turns docker/requests exceptions into
RuntimeOperationError (ImageNotFoundError for missing images) so the policy
engine only has to deal with one family of errors.
"""

from typing import Any, Callable, Dict, Iterator, List, Optional, Set

import docker
import docker.errors
import requests
import urllib3.exceptions

from image_janitor.models import CreationEvent, ImageId, ImageRef, ImageReferences, RemovalItem
from image_janitor.runtime import (
    ContainerRuntime,
    EventStream,
    EventStreamError,
    ImageNotFoundError,
    RuntimeOperationError,
    RuntimeUnavailableError,
)
from image_janitor.utils.logging_utils import get_logger

logger = get_logger(__name__)

CREATION_EVENT_FILTERS = {"type": "container", "event": "create"}


def event_image_ref(raw: Dict[str, Any]) -> Optional[str]:
    """Extract the image reference from a raw daemon event.

    Older API versions only send "from"; newer ones also carry the image in
    the actor attributes.
    """
    ref = raw.get("from")
    if not ref:
        ref = ((raw.get("Actor") or {}).get("Attributes") or {}).get("image")
    return ref or None


def parse_removal_response(response: Optional[List[Dict[str, str]]]) -> List[RemovalItem]:
    """Convert the daemon's image-delete response into RemovalItems"""
    items = []
    for entry in response or []:
        if entry.get("Deleted"):
            items.append(RemovalItem(deleted=entry["Deleted"]))
        elif entry.get("Untagged"):
            items.append(RemovalItem(untagged=entry["Untagged"]))
    return items


class DockerRuntime(ContainerRuntime):
    """ContainerRuntime backed by a Docker daemon"""

    def __init__(self, config_manager=None, client: Optional[docker.DockerClient] = None):
        """Initialize DockerRuntime.

        Args:
            config_manager: ConfigManager instance for endpoint, API version and timeout
            client: Pre-built DockerClient (mostly for tests); built from config if omitted
        """
        self.docker_host = config_manager.get_docker_host() if config_manager else None
        if client is not None:
            self.client = client
            return

        try:
            self.client = docker.DockerClient(
                base_url=self.docker_host,
                version=config_manager.get_docker_api_version(),
                timeout=config_manager.get_docker_timeout(),
            )
        except docker.errors.DockerException as e:
            raise RuntimeUnavailableError("connect to Docker daemon", e) from e

    def _call(self, operation: str, func: Callable, *args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except docker.errors.NotFound as e:
            raise ImageNotFoundError(operation, e) from e
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeOperationError(operation, e) from e

    def ping(self) -> None:
        try:
            self._call("ping Docker daemon", self.client.ping)
        except RuntimeOperationError as e:
            raise RuntimeUnavailableError("ping Docker daemon", e.error) from e

    def resolve_image(self, ref: str) -> Optional[ImageId]:
        try:
            attrs = self._call(f"inspect image {ref}", self.client.api.inspect_image, ref)
        except ImageNotFoundError:
            return None
        image_id = ImageId(attrs["Id"])
        logger.debug(f"Image name '{ref}' mapped to image id '{image_id}'")
        return image_id

    def list_images(self) -> Set[ImageId]:
        ids = self._call("list images", self.client.api.images, quiet=True)
        return {ImageId(image_id) for image_id in ids or []}

    def image_references(self, image_id: ImageId) -> ImageReferences:
        try:
            attrs = self._call(f"inspect image {image_id}", self.client.api.inspect_image, image_id)
        except ImageNotFoundError:
            return ImageReferences()
        repo_tags = attrs.get("RepoTags") or []
        labels = (attrs.get("Config") or {}).get("Labels") or {}
        return ImageReferences(repo_tags=tuple(repo_tags), labels=dict(labels))

    def containers_referencing(self, image_id: ImageId, include_stopped: bool) -> int:
        containers = self._call(
            f"list containers for image {image_id}",
            self.client.api.containers,
            quiet=True,
            all=include_stopped,
            filters={"ancestor": image_id},
        )
        return len(containers or [])

    def remove_image(self, image_id: ImageId, force: bool) -> List[RemovalItem]:
        response = self._call(f"remove image {image_id}", self.client.api.remove_image, image_id, force=force)
        return parse_removal_response(response)

    def prune_dangling(self) -> int:
        report = self._call("prune dangling images", self.client.images.prune, filters={"dangling": True})
        return int((report or {}).get("SpaceReclaimed") or 0)

    def subscribe_creation_events(self) -> EventStream:
        try:
            raw_stream = self._call(
                "subscribe to container events",
                self.client.events,
                decode=True,
                filters=CREATION_EVENT_FILTERS,
            )
        except RuntimeOperationError as e:
            raise RuntimeUnavailableError("subscribe to container events", e.error) from e

        return EventStream(self._creation_events(raw_stream), on_close=raw_stream.close)

    def _creation_events(self, raw_stream) -> Iterator[CreationEvent]:
        # Iterate below CancellableStream, which maps ProtocolError and OSError to StopIteration
        source = getattr(raw_stream, "_stream", raw_stream)
        try:
            for raw in source:
                ref = event_image_ref(raw)
                if not ref:
                    logger.debug(f"Ignoring creation event without image reference: {raw}")
                    continue
                actor = raw.get("Actor") or {}
                yield CreationEvent(
                    image_ref=ImageRef(ref),
                    container_id=raw.get("id") or actor.get("ID"),
                    time=raw.get("time"),
                )
        except (
            docker.errors.DockerException,
            requests.exceptions.RequestException,
            urllib3.exceptions.HTTPError,
            OSError,
            ValueError,
        ) as e:
            raise EventStreamError(f"container event stream failed: {e}") from e
