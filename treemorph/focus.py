"""
Focus Controller + Photo Layer - interactive photo panels

Photo panels have three logical placements:
- gallery: a loose wall of panels in front of the tree, used while scattered
- assembled: hung on a shell just outside the tree cone, facing outward
- focused: a fixed distance in front of the camera, facing it

NORMAL panels blend gallery -> assembled with the morph value. At most one
panel is FOCUSED at a time; FocusController owns that single id, so moving
focus from one panel to another happens in one assignment.

Panels are identified by stable integer ids. Removing a panel never changes
another panel's id, and a focused panel that is removed simply clears focus.
A panel whose image is still loading (or failed to load) is inert: it is not
laid out, not emitted, and cannot take focus.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .config import FOCUS_DISTANCE, PhotoParams, clamp_photo_scale
from .fields import PositionFieldGenerator
from .layers import FrameSnapshot, TransformBatch
from .math_utils import (
    look_at_quaternion,
    quat_conjugate,
    quat_from_euler,
    quat_multiply,
    quat_rotate,
    quat_slerp,
)
from .resources import ResourceHandle, ResourceStatus

logger = logging.getLogger(__name__)


class FocusController:
    """
    NORMAL/FOCUSED state for every panel of one layer, stored as a single id.

    Attributes:
        focused_id: Id of the focused panel, or None
    """

    def __init__(self):
        self.focused_id: Optional[int] = None

    def is_focused(self, element_id: int) -> bool:
        return self.focused_id is not None and self.focused_id == element_id

    def toggle(self, element_id: int, eligible: bool = True) -> Tuple[Optional[int], Optional[int]]:
        """
        Apply a toggle event.

        Toggling the focused panel returns it to NORMAL. Toggling any other
        eligible panel focuses it and releases the previous one.

        Args:
            element_id: Panel that was toggled
            eligible: Whether the panel may take focus (ready and present)

        Returns:
            (previous_focused_id, new_focused_id)
        """
        previous = self.focused_id
        if previous == element_id:
            self.focused_id = None
        elif eligible:
            self.focused_id = element_id
        else:
            logger.debug(f"Ignoring focus toggle for ineligible photo {element_id}")
        return previous, self.focused_id

    def release(self, element_id: int) -> bool:
        """Clear focus if element_id holds it (used on removal)."""
        if self.focused_id == element_id:
            self.focused_id = None
            return True
        return False

    def clear(self):
        self.focused_id = None


class PhotoElement:
    """
    One photo panel.

    Anchors are drawn once when the panel is added; the current pose is the
    smoothed state that converges toward the per-frame target.
    """

    def __init__(self, element_id: int, source: str, handle: ResourceHandle, rng: np.random.Generator,
                 tree_height: float, tree_radius: float, params: PhotoParams):
        self.id = element_id
        self.source = source
        self.handle = handle
        self.focused = False
        self.hovered = False

        # Assembled anchor on a shell just outside the cone, facing away from the trunk
        h = (rng.random() - 0.5) * (tree_height - 2.0)
        ratio = 1.0 - (h + tree_height / 2.0) / tree_height
        r = (tree_radius + params.radius_offset) * ratio
        theta = rng.random() * 2.0 * math.pi
        self.tree_pos = np.array([r * math.cos(theta), h, r * math.sin(theta)])
        self.tree_rot = look_at_quaternion(self.tree_pos)

        self.gallery_pos = np.array([
            (rng.random() - 0.5) * 30.0,
            (rng.random() - 0.5) * 16.0,
            10.0 + rng.random() * 15.0,
        ])
        self.gallery_rot = quat_from_euler([
            (rng.random() - 0.5) * 0.5,
            (rng.random() - 0.5) * 0.5,
            (rng.random() - 0.5) * 0.2,
        ])

        self.phase = rng.random() * 2.0 * math.pi
        self.speed = 0.5 + rng.random() * 0.5
        self.amp = 0.5 + rng.random() * 0.5

        self.position: Optional[np.ndarray] = None
        self.quaternion: Optional[np.ndarray] = None
        self.scale = 0.0
        self.frame_scale = 1.0

    @property
    def status(self) -> ResourceStatus:
        return self.handle.status

    @property
    def is_inert(self) -> bool:
        return not self.handle.is_ready

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "status": self.handle.status.name.lower(),
            "aspect": self.handle.aspect,
            "error": self.handle.error,
            "focused": self.focused,
            "hovered": self.hovered,
        }


class PhotoLayer:
    """
    Layer of photo panels with its own focus state machine.

    Runs after every other layer in a tick, because focused placement is
    expressed in the coordinates of the rotating group and needs the group
    transform of this frame.

    Attributes:
        name: Layer name
        scale_target: Global photo scale the panels ease toward
    """
    shape = "photo"
    in_group = True

    def __init__(self, name: str, generator: PositionFieldGenerator, params: Optional[PhotoParams] = None,
                 scale_target: float = 1.0, focus_distance: float = FOCUS_DISTANCE, color: Optional[str] = "#ffffff"):
        self.name = name
        self.generator = generator
        self.params = params or PhotoParams()
        self.scale_target = clamp_photo_scale(scale_target)
        self.focus_distance = focus_distance
        self.color = color
        self.focus = FocusController()
        self.elements: Dict[int, PhotoElement] = {}

    @property
    def count(self) -> int:
        return len(self.elements)

    # --------- Events ---------

    def add(self, element_id: int, source: str, handle: ResourceHandle) -> PhotoElement:
        if element_id in self.elements:
            raise ValueError(f"Photo id {element_id} already exists")
        rng = self.generator.rng_for(f"{self.name}-{element_id}")
        element = PhotoElement(element_id, source, handle, rng,
                               self.generator.tree_height, self.generator.tree_radius, self.params)
        self.elements[element_id] = element
        logger.info(f"Added photo {element_id} ({source})")
        return element

    def remove(self, element_id: int) -> bool:
        element = self.elements.pop(element_id, None)
        if element is None:
            logger.warning(f"Cannot remove unknown photo {element_id}")
            return False
        element.handle.cancel()
        if self.focus.release(element_id):
            logger.debug(f"Focused photo {element_id} removed, focus cleared")
        logger.info(f"Removed photo {element_id}")
        return True

    def toggle_focus(self, element_id: int) -> Tuple[Optional[int], Optional[int]]:
        """
        Toggle focus on a panel.

        Returns:
            (previous_focused_id, new_focused_id)
        """
        element = self.elements.get(element_id)
        if element is None:
            logger.warning(f"Cannot focus unknown photo {element_id}")
            return self.focus.focused_id, self.focus.focused_id
        previous, current = self.focus.toggle(element_id, eligible=not element.is_inert)
        self._sync_focus_flags()
        if previous != current:
            logger.debug(f"Photo focus {previous} -> {current}")
        return previous, current

    def set_hover(self, element_id: int, hovered: bool) -> bool:
        element = self.elements.get(element_id)
        if element is None:
            logger.debug(f"Ignoring hover for unknown photo {element_id}")
            return False
        element.hovered = bool(hovered)
        return True

    def set_scale(self, value: float):
        self.scale_target = clamp_photo_scale(value)

    def clear_focus(self) -> Optional[int]:
        """Return every panel to NORMAL. Returns the id that lost focus, if any."""
        previous = self.focus.focused_id
        self.focus.clear()
        self._sync_focus_flags()
        return previous

    def teardown(self):
        for element in self.elements.values():
            element.handle.cancel()
        self.elements.clear()
        self.focus.clear()

    def describe(self) -> List[Dict[str, Any]]:
        return [self.elements[k].describe() for k in sorted(self.elements)]

    def _sync_focus_flags(self):
        for element in self.elements.values():
            element.focused = self.focus.is_focused(element.id)

    # --------- Per-frame ---------

    def _focused_target(self, snapshot: FrameSnapshot) -> Tuple[np.ndarray, np.ndarray]:
        """Pose a fixed distance in front of the camera, in group-local coordinates."""
        camera = snapshot.camera
        group = snapshot.group
        world = np.asarray(camera.position, dtype=float) + quat_rotate(camera.quaternion, [0.0, 0.0, -self.focus_distance])
        inverse = quat_conjugate(group.quaternion)
        local = quat_rotate(inverse, world - group.position) / max(group.scale, 1e-6)
        return local, quat_multiply(inverse, camera.quaternion)

    def _normal_target(self, element: PhotoElement, snapshot: FrameSnapshot) -> Tuple[np.ndarray, np.ndarray, float]:
        """
        Gallery/assembled blend with float and hover near the gallery end and
        sway near the assembled end.
        """
        t = snapshot.time
        m = snapshot.morph
        p = self.params
        gallery_weight = max(0.0, 1.0 - 2.0 * m)
        tree_weight = max(0.0, 2.0 * m - 1.0)

        pos = element.gallery_pos + (element.tree_pos - element.gallery_pos) * m
        quat = quat_slerp(element.gallery_rot, element.tree_rot, m)
        scale = self.scale_target

        fx, fy, fz = p.float_frequencies
        drift = np.array([
            math.sin(t * element.speed * fx + element.phase) * element.amp,
            math.cos(t * element.speed * fy + element.phase) * element.amp,
            math.sin(t * element.speed * fz + element.phase * 2.0) * element.amp * 0.5,
        ])
        pos = pos + drift * gallery_weight
        if element.hovered:
            pos[2] += p.hover_lift * gallery_weight
            scale *= 1.0 + (p.hover_scale - 1.0) * gallery_weight

        sway = math.sin(t * p.sway_frequency + element.phase) * p.sway_amplitude * tree_weight
        quat = quat_multiply(quat, quat_from_euler([0.0, 0.0, sway]))
        return pos, quat, scale

    def advance(self, snapshot: FrameSnapshot) -> TransformBatch:
        """
        Poll resources, converge every ready panel toward its target and emit them.

        Returns:
            TransformBatch of the ready panels, ordered by id, with ids attached
        """
        p = self.params
        ready: List[PhotoElement] = []
        for element_id in sorted(self.elements):
            element = self.elements[element_id]
            if element.handle.poll() is not ResourceStatus.READY:
                continue
            ready.append(element)

            if element.focused:
                pos, quat = self._focused_target(snapshot)
                scale = self.generator.tree_height / 3.0 / 1.5
                rate = p.focus_rate
            else:
                pos, quat, scale = self._normal_target(element, snapshot)
                rate = p.normal_rate

            if element.position is None:
                # First ready frame: appear at the target and grow in
                element.position = pos.copy()
                element.quaternion = quat.copy()
            else:
                element.position = element.position + (pos - element.position) * rate
                element.quaternion = quat_slerp(element.quaternion, quat, rate)
            element.scale += (scale - element.scale) * p.scale_rate
            frame_target = (element.handle.aspect + 0.2) / 1.2
            element.frame_scale += (frame_target - element.frame_scale) * p.scale_rate

        if not ready:
            return TransformBatch.empty(ids=np.zeros(0, dtype=int), color=self.color, shape=self.shape)
        positions = np.array([e.position for e in ready])
        quaternions = np.array([e.quaternion for e in ready])
        scales = np.array([[e.scale * e.frame_scale, e.scale, e.scale] for e in ready])
        ids = np.array([e.id for e in ready], dtype=int)
        return TransformBatch(positions, quaternions, scales, ids=ids,
                              color=self.color, shape=self.shape, in_group=self.in_group)
