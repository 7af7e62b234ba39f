import cv2
import numpy as np
import pytest

from treemorph.resources import (
    FALLBACK_ASPECT,
    ImageLoader,
    ResourceHandle,
    ResourceStatus,
    image_aspect,
)


@pytest.fixture
def loader():
    loader = ImageLoader(max_workers=1)
    yield loader
    loader.shutdown()


def test_image_file_resolves_aspect(tmp_path, loader, wait_for):
    path = tmp_path / "wide.png"
    assert cv2.imwrite(str(path), np.zeros((50, 100, 3), dtype=np.uint8))
    handle = loader.load(str(path))
    assert handle.aspect == FALLBACK_ASPECT
    assert wait_for(lambda: handle.poll() is not ResourceStatus.PENDING)
    assert handle.status is ResourceStatus.READY
    assert handle.aspect == pytest.approx(2.0)


def test_missing_file_fails(tmp_path, loader, wait_for):
    handle = loader.load(str(tmp_path / "nope.jpg"))
    assert wait_for(lambda: handle.poll() is not ResourceStatus.PENDING)
    assert handle.status is ResourceStatus.FAILED
    assert "could not decode" in handle.error
    assert handle.aspect == FALLBACK_ASPECT


def test_array_source_is_ready_immediately(loader):
    handle = loader.load(np.zeros((30, 10, 3), dtype=np.uint8))
    assert handle.is_ready
    assert handle.aspect == pytest.approx(1.0 / 3.0)


def test_empty_array_fails(loader):
    handle = loader.load(np.zeros((0, 10, 3), dtype=np.uint8))
    assert handle.status is ResourceStatus.FAILED


def test_invalid_aspect_fails():
    assert ResourceHandle.ready("x", 0.0).status is ResourceStatus.FAILED
    assert ResourceHandle.ready("x", 1.25).aspect == 1.25


def test_pending_handle_without_work_stays_pending():
    handle = ResourceHandle("later.jpg")
    assert handle.poll() is ResourceStatus.PENDING
    handle.cancel()
    assert handle.poll() is ResourceStatus.PENDING


def test_image_aspect_raises_on_bad_file(tmp_path):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"not an image")
    with pytest.raises(ValueError):
        image_aspect(str(bad))
