"""
Asynchronous resource handles for photo panels.

Images are decoded off the frame loop. A ResourceHandle starts PENDING and
moves exactly once to READY (with an aspect ratio) or FAILED (with an error
message). The transition only happens inside poll(), which the simulation
calls from its own tick, so layer code never sees a half-resolved handle.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum, auto
from typing import Optional, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# Aspect used until (or unless) the real one is known
FALLBACK_ASPECT = 1.0


class ResourceStatus(Enum):
    PENDING = auto()
    READY = auto()
    FAILED = auto()


class ResourceHandle:
    """
    Capability-erased view of an image that may not be decoded yet.

    Attributes:
        source: What was requested (path or description)
        status: PENDING, READY or FAILED
        aspect: width / height once READY, FALLBACK_ASPECT otherwise
        error: Failure message once FAILED
    """

    def __init__(self, source: str, future: Optional[Future] = None):
        self.source = source
        self.status = ResourceStatus.PENDING
        self.aspect = FALLBACK_ASPECT
        self.error: Optional[str] = None
        self._future = future

    @classmethod
    def ready(cls, source: str, aspect: float) -> "ResourceHandle":
        handle = cls(source)
        handle._resolve(aspect)
        return handle

    @classmethod
    def failed(cls, source: str, error: str) -> "ResourceHandle":
        handle = cls(source)
        handle._fail(error)
        return handle

    @property
    def is_ready(self) -> bool:
        return self.status is ResourceStatus.READY

    def poll(self) -> ResourceStatus:
        """Pick up a finished background load. Safe to call every frame."""
        if self.status is ResourceStatus.PENDING and self._future is not None and self._future.done():
            future, self._future = self._future, None
            exc = future.exception()
            if exc is not None:
                self._fail(str(exc))
            else:
                self._resolve(future.result())
        return self.status

    def cancel(self):
        if self._future is not None:
            self._future.cancel()
            self._future = None

    def _resolve(self, aspect: float):
        if not aspect or aspect <= 0 or not np.isfinite(aspect):
            self._fail(f"invalid aspect ratio {aspect}")
            return
        self.status = ResourceStatus.READY
        self.aspect = float(aspect)

    def _fail(self, error: str):
        self.status = ResourceStatus.FAILED
        self.error = error
        logger.warning(f"Could not load image {self.source}: {error}")


def image_aspect(image: Union[str, np.ndarray]) -> float:
    """
    Width / height of an image file or an already decoded image array.

    Raises:
        ValueError: if the file cannot be decoded or the image is empty
    """
    if isinstance(image, np.ndarray):
        img = image
    else:
        img = cv2.imread(str(image))
        if img is None:
            raise ValueError(f"cv2 could not decode {image}")
    h, w = img.shape[:2]
    if h == 0 or w == 0:
        raise ValueError("empty image")
    return w / float(h)


class ImageLoader:
    """
    Decodes images on a small worker pool and hands out ResourceHandles.

    Attributes:
        max_workers: Size of the decoding pool
    """

    def __init__(self, max_workers: int = 2):
        self.max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    def load(self, source: Union[str, np.ndarray]) -> ResourceHandle:
        """
        Start loading an image.

        Args:
            source: File path, or a decoded image array (resolved immediately)

        Returns:
            A handle that becomes READY or FAILED on a later poll()
        """
        if isinstance(source, np.ndarray):
            try:
                return ResourceHandle.ready("<array>", image_aspect(source))
            except ValueError as e:
                return ResourceHandle.failed("<array>", str(e))
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="treemorph-img")
        future = self._executor.submit(image_aspect, source)
        return ResourceHandle(str(source), future)

    def shutdown(self):
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
