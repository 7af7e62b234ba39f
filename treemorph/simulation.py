"""
Simulation - the per-frame pipeline that ties every component together

One call to Simulation.tick() runs these stages, in this order:

1. events    - apply queued events (photo add/remove, focus, hover, live config)
2. classify  - landmark sample (or None) -> GestureState
3. integrate - physics (spin, tilt, scale) and morph value
4. animate   - every element layer turns the frame snapshot into transforms
5. focus     - photo panels, which need this frame's group transform

Events may be posted from any thread (e.g. the HTTP control API); they are
only applied inside the events stage, so the tick is the single writer of
all simulation state. Shared values are frozen into one FrameSnapshot after
the integrate stage, and every layer in the tick reads that same snapshot.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Tuple

import numpy as np

from .config import SceneConfig, clamp_photo_scale, clamp_tree_scale
from .fields import PositionFieldGenerator
from .focus import PhotoLayer
from .gesture_classifier import GestureClassifier, GestureState, LandmarkSample, TreeMode
from .layers import CameraPose, FoliageLayer, FrameSnapshot, Layer, OrnamentLayer, SnowLayer, StarLayer, TransformBatch
from .morph import MorphStateController
from .physics import GroupTransform, InertialRotationController
from .resources import ImageLoader

logger = logging.getLogger(__name__)

PIPELINE = ("events", "classify", "integrate", "animate", "focus")

PHOTO_LAYER = "photos"
STAR_LAYER = "star"


@dataclass
class FrameOutput:
    """
    Everything the rendering side needs for one frame.

    Attributes:
        frame: Frame index (starts at 1 for the first tick)
        time: Elapsed simulation time in seconds
        gesture: Classifier output for this frame
        morph: Shared morph value in [0, 1]
        angular_velocity: Shared spin rate (also the wind signal)
        group: World transform of the rotating tree group
        layers: TransformBatch per layer name
        events: Notable state changes this frame, as {"type": ...} dicts
    """
    frame: int
    time: float
    gesture: GestureState
    morph: float
    angular_velocity: float
    group: GroupTransform
    layers: Dict[str, TransformBatch] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self, include_elements: bool = False) -> Dict[str, Any]:
        return {
            "frame": self.frame,
            "time": self.time,
            "gesture": {
                "openness": self.gesture.openness,
                "mode": self.gesture.mode.name.lower(),
                "hand_position": [float(v) for v in self.gesture.hand_position],
                "hand_present": self.gesture.hand_present,
            },
            "morph": self.morph,
            "angular_velocity": self.angular_velocity,
            "group": {
                "position": [float(v) for v in self.group.position],
                "quaternion": [float(v) for v in self.group.quaternion],
                "scale": self.group.scale,
            },
            "layers": {name: batch.to_dict(include_elements) for name, batch in self.layers.items()},
            "events": list(self.events),
        }


class Simulation:
    """
    Owns the classifier, the controllers and every layer, and runs the pipeline.

    Attributes:
        config: SceneConfig the scene was built from (colors and scale targets
            are kept current as live events are applied)
        layers: Element layers by name, in animation order
        photos: The photo panel layer
    """

    def __init__(self, config: Optional[SceneConfig] = None, loader: Optional[ImageLoader] = None):
        self.config = config or SceneConfig()
        self.loader = loader or ImageLoader()

        self._inbox: Deque[Tuple] = deque()
        self._lock = threading.Lock()
        self._next_id = 1
        self._photo_ids = set()

        cfg = self.config
        self.generator = PositionFieldGenerator(cfg.tree_height, cfg.tree_radius, cfg.scatter_radius, seed=cfg.seed)
        self.classifier = GestureClassifier(threshold=cfg.openness_threshold, hysteresis=cfg.hysteresis)
        self.physics = InertialRotationController(scale_target=cfg.tree_scale)
        self.morph = MorphStateController()

        self.layers: Dict[str, Layer] = {}
        self._color_keys: Dict[str, str] = {}
        self._add_layer(FoliageLayer("foliage", self.generator, cfg.foliage_count,
                                     params=cfg.foliage, color=cfg.colors.get("foliage")), "foliage")
        for orn in cfg.ornaments:
            self._add_layer(OrnamentLayer(orn.name, self.generator, orn.count, shape=orn.shape,
                                          scale_base=orn.scale_base, params=cfg.ornament,
                                          color=cfg.colors.get(orn.color_key)), orn.color_key)
        self._add_layer(StarLayer(STAR_LAYER, self.generator, params=cfg.star, color=cfg.colors.get("star", "#ffd700")), "star")
        self._add_layer(SnowLayer("snow", self.generator, cfg.snow_count, params=cfg.snow), "snow")
        self.photos = PhotoLayer(PHOTO_LAYER, self.generator, params=cfg.photo,
                                 scale_target=cfg.photo_scale, focus_distance=cfg.focus_distance)

        self.frame = 0
        self.time = 0.0
        self.gesture = GestureState()
        self.last_output: Optional[FrameOutput] = None
        self._photo_listing: List[Dict[str, Any]] = []
        logger.info(f"Simulation ready with layers: {', '.join(self.layers)}")

    def _add_layer(self, layer: Layer, color_key: str):
        self.layers[layer.name] = layer
        self._color_keys[layer.name] = color_key

    # --------- Events (any thread) ---------

    def _post(self, *event):
        self._inbox.append(event)

    def add_photo(self, source) -> int:
        """
        Add a photo panel. The image starts loading immediately.

        Args:
            source: Image path, or a decoded image array

        Returns:
            The new panel's stable id
        """
        handle = self.loader.load(source)
        with self._lock:
            element_id = self._next_id
            self._next_id += 1
            self._photo_ids.add(element_id)
        self._post("add_photo", element_id, handle.source, handle)
        return element_id

    def remove_photo(self, element_id: int) -> bool:
        """Returns False if no panel with this id exists (or it was already removed)."""
        with self._lock:
            if element_id not in self._photo_ids:
                logger.warning(f"Cannot remove unknown photo {element_id}")
                return False
            self._photo_ids.discard(element_id)
        self._post("remove_photo", element_id)
        return True

    def has_photo(self, element_id: int) -> bool:
        with self._lock:
            return element_id in self._photo_ids

    def toggle_focus(self, element_id: int) -> bool:
        if not self.has_photo(element_id):
            logger.warning(f"Cannot focus unknown photo {element_id}")
            return False
        self._post("toggle_focus", element_id)
        return True

    def set_hover(self, element_id: int, hovered: bool) -> bool:
        if not self.has_photo(element_id):
            return False
        self._post("set_hover", element_id, bool(hovered))
        return True

    def set_tree_scale(self, value: float):
        self._post("set_tree_scale", float(value))

    def set_photo_scale(self, value: float):
        self._post("set_photo_scale", float(value))

    def set_colors(self, colors: Dict[str, str]):
        self._post("set_colors", dict(colors))

    def set_layer_count(self, name: str, count: int) -> bool:
        """
        Change a layer's element count (regenerates that layer only).

        Returns:
            False for layers whose count cannot be changed (unknown, star, photos)
        """
        if name not in self.layers or name == STAR_LAYER:
            logger.warning(f"Layer '{name}' does not have an adjustable count")
            return False
        self._post("set_layer_count", name, int(count))
        return True

    def reset(self):
        """Return gesture, physics, morph and the clock to their initial state on the next tick."""
        self._post("reset")

    def photo_listing(self) -> List[Dict[str, Any]]:
        """Photo panel states as of the last completed tick."""
        return list(self._photo_listing)

    # --------- Event handlers (tick thread only) ---------

    def _drain_events(self, events: List[Dict[str, Any]]):
        while self._inbox:
            kind, *args = self._inbox.popleft()
            handler = getattr(self, f"_on_{kind}")
            handler(events, *args)

    def _on_add_photo(self, events, element_id, source, handle):
        self.photos.add(element_id, source, handle)
        events.append({"type": "photo_added", "id": element_id})

    def _on_remove_photo(self, events, element_id):
        was_focused = self.photos.focus.is_focused(element_id)
        if self.photos.remove(element_id):
            events.append({"type": "photo_removed", "id": element_id})
            if was_focused:
                events.append({"type": "focus", "previous": element_id, "current": None})

    def _on_toggle_focus(self, events, element_id):
        previous, current = self.photos.toggle_focus(element_id)
        if previous != current:
            events.append({"type": "focus", "previous": previous, "current": current})

    def _on_set_hover(self, events, element_id, hovered):
        self.photos.set_hover(element_id, hovered)

    def _on_set_tree_scale(self, events, value):
        self.config.tree_scale = clamp_tree_scale(value)
        self.physics.set_scale_target(self.config.tree_scale)

    def _on_set_photo_scale(self, events, value):
        self.config.photo_scale = clamp_photo_scale(value)
        self.photos.set_scale(self.config.photo_scale)

    def _on_set_colors(self, events, colors):
        for key, color in colors.items():
            targets = [name for name, ck in self._color_keys.items() if ck == key]
            if not targets:
                logger.warning(f"Ignoring unknown color key: {key}")
                continue
            self.config.colors[key] = color
            for name in targets:
                self.layers[name].color = color

    def _on_set_layer_count(self, events, name, count):
        if self.layers[name].resize(count):
            events.append({"type": "layer_resized", "layer": name, "count": self.layers[name].count})

    def _on_reset(self, events):
        self.classifier.reset()
        self.physics.reset()
        self.morph.reset()
        for layer in self.layers.values():
            wind = getattr(layer, "wind", None)
            if wind is not None:
                wind.reset()
        previous = self.photos.clear_focus()
        if previous is not None:
            events.append({"type": "focus", "previous": previous, "current": None})
        self.frame = 0
        self.time = 0.0
        self.gesture = GestureState()
        events.append({"type": "reset"})
        logger.info("Simulation reset")

    # --------- Tick ---------

    def tick(self, sample: Optional[LandmarkSample], dt: float, camera: Optional[CameraPose] = None) -> FrameOutput:
        """
        Run one frame of the pipeline.

        Args:
            sample: Latest landmark sample, or None when no hand was detected
            dt: Seconds since the previous tick (negative values count as 0)
            camera: Observer pose; defaults to the configured fixed camera

        Returns:
            FrameOutput for this frame
        """
        dt = max(0.0, float(dt))
        events: List[Dict[str, Any]] = []

        # events
        self._drain_events(events)

        # classify
        previous_mode = self.gesture.mode
        self.gesture = self.classifier.update(sample)
        if self.gesture.mode is not previous_mode:
            events.append({"type": "mode", "mode": self.gesture.mode.name.lower(), "openness": self.gesture.openness})

        # integrate
        physics = self.physics.update(self.gesture.hand_position, self.gesture.mode, dt)
        morph = self.morph.update(self.gesture.mode, dt)
        self.time += dt
        self.frame += 1

        if camera is None:
            camera = CameraPose(position=np.array(self.config.camera_position, dtype=float))
        snapshot = FrameSnapshot(
            time=self.time,
            dt=dt,
            morph=morph.value,
            angular_velocity=physics.angular_velocity,
            group=GroupTransform.from_physics(physics, offset=self.config.group_offset),
            camera=camera,
        )

        # animate
        batches = {name: layer.advance(snapshot) for name, layer in self.layers.items()}

        # focus
        batches[PHOTO_LAYER] = self.photos.advance(snapshot)
        self._photo_listing = self.photos.describe()

        output = FrameOutput(
            frame=self.frame,
            time=self.time,
            gesture=self.gesture,
            morph=morph.value,
            angular_velocity=physics.angular_velocity,
            group=snapshot.group,
            layers=batches,
            events=events,
        )
        self.last_output = output
        return output

    @property
    def mode(self) -> TreeMode:
        return self.gesture.mode

    def teardown(self):
        """Release every layer's element state and stop background loading."""
        self._inbox.clear()
        for layer in self.layers.values():
            layer.teardown()
        self.photos.teardown()
        with self._lock:
            self._photo_ids.clear()
        self._photo_listing = []
        self.loader.shutdown()
        logger.info("Simulation torn down")
