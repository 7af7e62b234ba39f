"""
Live Demo - webcam hand control with a pygame preview

Runs the whole pipeline in real time:
- OpenCV grabs webcam frames, MediaPipe turns them into landmark samples
- Simulation ticks once per preview frame
- pygame draws a simple perspective projection of every layer

Usage:
    treemorph-demo [--config scene.json] [--camera 0] [--photo a.jpg --photo b.png]

Close your hand to assemble the tree, open it to scatter. While assembled,
swipe sideways to spin it. Click a photo panel to bring it up front (click
again to send it back). Press 'q' or Esc to quit.
"""

import argparse
import logging
import math
import time
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
import pygame

from .config import SceneConfig, load_config
from .logging_config import setup_logging
from .math_utils import quat_rotate
from .simulation import PHOTO_LAYER, FrameOutput, Simulation
from .tracking import HandTracker, open_camera

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 720)
FIELD_OF_VIEW = 50.0   # vertical, degrees
BACKGROUND = (5, 8, 16)
# Draw at most this many points per layer to keep the preview responsive
MAX_POINTS_PER_LAYER = 4000
# Screen distance (pixels) within which a click or hover hits a panel
PICK_RADIUS = 40.0


def _hex_to_rgb(color: Optional[str], default=(255, 255, 255)) -> Tuple[int, int, int]:
    if not color or not color.startswith("#") or len(color) != 7:
        return default
    return tuple(int(color[i:i + 2], 16) for i in (1, 3, 5))


class Projector:
    """
    Pinhole projection for the fixed demo camera (looking down -Z).

    Attributes:
        camera_position: World position of the eye
        focal: Focal length in pixels
    """

    def __init__(self, camera_position, size=WINDOW_SIZE, fov=FIELD_OF_VIEW):
        self.camera_position = np.asarray(camera_position, dtype=float)
        self.width, self.height = size
        self.focal = (self.height / 2.0) / math.tan(math.radians(fov) / 2.0)

    def to_world(self, output: FrameOutput, positions: np.ndarray, in_group: bool) -> np.ndarray:
        if not in_group or len(positions) == 0:
            return positions
        g = output.group
        q = np.broadcast_to(g.quaternion, (len(positions), 4))
        return quat_rotate(q, positions * g.scale) + g.position

    def project(self, world: np.ndarray):
        """
        Returns:
            (screen_xy, depth, visible) arrays for each point
        """
        rel = world - self.camera_position
        depth = -rel[:, 2]
        visible = depth > 0.1
        safe = np.where(visible, depth, 1.0)
        x = self.width / 2.0 + rel[:, 0] / safe * self.focal
        y = self.height / 2.0 - rel[:, 1] / safe * self.focal
        return np.column_stack([x, y]), depth, visible


def draw_frame(screen, projector: Projector, output: FrameOutput) -> Dict[int, Tuple[float, float]]:
    """
    Draw every layer and return the screen position of each photo panel.

    Returns:
        photo id -> screen (x, y) for picking
    """
    screen.fill(BACKGROUND)
    photo_centers: Dict[int, Tuple[float, float]] = {}

    for name, batch in output.layers.items():
        if len(batch) == 0:
            continue
        positions = batch.positions
        scales = batch.scales
        ids = batch.ids
        if name != PHOTO_LAYER and len(batch) > MAX_POINTS_PER_LAYER:
            step = int(math.ceil(len(batch) / MAX_POINTS_PER_LAYER))
            positions = positions[::step]
            scales = scales[::step]
        world = projector.to_world(output, positions, batch.in_group)
        screen_xy, depth, visible = projector.project(world)
        color = _hex_to_rgb(batch.color)
        group_scale = output.group.scale if batch.in_group else 1.0

        for i in np.nonzero(visible)[0]:
            x, y = screen_xy[i]
            size = float(scales[i, 1]) * group_scale * projector.focal / depth[i]
            if name == PHOTO_LAYER:
                w = max(2, int(size * float(scales[i, 0] / max(scales[i, 1], 1e-6)) * 1.2))
                h = max(2, int(size * 1.5))
                rect = pygame.Rect(0, 0, w, h)
                rect.center = (int(x), int(y))
                pygame.draw.rect(screen, color, rect, 2)
                photo_centers[int(ids[i])] = (float(x), float(y))
            elif batch.shape == "point":
                pygame.draw.circle(screen, color, (int(x), int(y)), max(1, int(size * 0.05)))
            else:
                pygame.draw.circle(screen, color, (int(x), int(y)), max(1, int(size)))
    return photo_centers


def pick_photo(centers: Dict[int, Tuple[float, float]], pos) -> Optional[int]:
    best, best_d = None, PICK_RADIUS
    for pid, (x, y) in centers.items():
        d = math.hypot(x - pos[0], y - pos[1])
        if d < best_d:
            best, best_d = pid, d
    return best


def draw_hud(screen, font, output: FrameOutput):
    g = output.gesture
    lines = [
        f"mode: {g.mode.name}  openness: {g.openness:.2f}  hand: {'yes' if g.hand_present else 'no'}",
        f"morph: {output.morph:.2f}  spin: {output.angular_velocity:+.2f}",
    ]
    for i, text in enumerate(lines):
        screen.blit(font.render(text, True, (220, 220, 220)), (12, 12 + i * 20))


def main(argv: Optional[List[str]] = None):
    """
    Entry point for the live demo.

    Sets up logging, the webcam and hand tracker, the Simulation and a pygame
    window, then runs one tick per rendered frame until the user quits.
    """
    parser = argparse.ArgumentParser(description="Gesture-driven particle tree demo")
    parser.add_argument("--config", help="Path to a JSON scene config")
    parser.add_argument("--camera", type=int, default=0, help="Webcam index")
    parser.add_argument("--photo", action="append", default=[], help="Photo to hang on the tree (repeatable)")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO))
    config = load_config(args.config) if args.config else SceneConfig()
    simulation = Simulation(config)
    for path in args.photo:
        simulation.add_photo(path)

    cap = open_camera(args.camera)
    tracker = HandTracker() if cap is not None else None
    if cap is None:
        logger.warning("Running without hand tracking")

    pygame.init()
    screen = pygame.display.set_mode(WINDOW_SIZE)
    pygame.display.set_caption("treemorph")
    font = pygame.font.SysFont(None, 22)
    clock = pygame.time.Clock()
    projector = Projector(config.camera_position)

    photo_centers: Dict[int, Tuple[float, float]] = {}
    hovered: Optional[int] = None
    last = time.perf_counter()
    running = True
    while running:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                running = False
            elif event.type == pygame.KEYDOWN and event.key in (pygame.K_q, pygame.K_ESCAPE):
                running = False
            elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                pid = pick_photo(photo_centers, event.pos)
                if pid is not None:
                    simulation.toggle_focus(pid)
            elif event.type == pygame.MOUSEMOTION:
                pid = pick_photo(photo_centers, event.pos)
                if pid != hovered:
                    if hovered is not None:
                        simulation.set_hover(hovered, False)
                    if pid is not None:
                        simulation.set_hover(pid, True)
                    hovered = pid

        sample = None
        if cap is not None:
            ok, frame = cap.read()
            if not ok:
                logger.error("Failed to capture frame")
                break
            sample = tracker.process(frame)
            tracker.draw(frame)
            preview = cv2.flip(frame, 1)
            cv2.imshow("treemorph: camera", preview)
            if cv2.waitKey(1) & 0xFF == ord('q'):
                running = False

        now = time.perf_counter()
        output = simulation.tick(sample, now - last)
        last = now
        for e in output.events:
            logger.debug(f"Event: {e}")

        photo_centers = draw_frame(screen, projector, output)
        draw_hud(screen, font, output)
        pygame.display.flip()
        clock.tick(60)

    if cap is not None:
        cap.release()
        cv2.destroyAllWindows()
    if tracker is not None:
        tracker.close()
    simulation.teardown()
    pygame.quit()


if __name__ == '__main__':
    main()
