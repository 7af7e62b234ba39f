"""
Control API - Flask endpoints that post events into a running Simulation

The API never touches simulation state directly: every write becomes a queued
event applied at the start of the next tick, and every read comes from the
last completed frame.
"""

import argparse
import logging
import threading
import time
from typing import Optional

from flask import Flask, jsonify, request

from .config import SceneConfig, load_config
from .logging_config import setup_logging
from .simulation import Simulation

logger = logging.getLogger(__name__)


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def create_app(simulation: Simulation) -> Flask:
    """
    Build the control API for one simulation.

    Args:
        simulation: The Simulation that receives the events

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    app.config["SIMULATION"] = simulation

    ### API ENDPOINTS ###

    @app.route('/api/state', methods=['GET'])
    def get_state():
        output = simulation.last_output
        if output is None:
            return jsonify({"frame": 0, "layers": {}, "events": []})
        include = request.args.get('elements', '0') in ('1', 'true', 'yes')
        return jsonify(output.to_dict(include_elements=include))

    @app.route('/api/photos', methods=['GET'])
    def list_photos():
        return jsonify(simulation.photo_listing())

    @app.route('/api/photos', methods=['POST'])
    def add_photo():
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not isinstance(data.get("source"), str) or not data["source"]:
            return _error("Expected JSON body with a 'source' path", 400)
        photo_id = simulation.add_photo(data["source"])
        logger.info(f"API added photo {photo_id}")
        return jsonify({"id": photo_id}), 201

    @app.route('/api/photos/<int:id>', methods=['DELETE'])
    def delete_photo(id):
        if not simulation.remove_photo(id):
            return _error("Photo not found", 404)
        return '', 204

    @app.route('/api/photos/<int:id>/focus', methods=['PUT'])
    def toggle_focus(id):
        if not simulation.toggle_focus(id):
            return _error("Photo not found", 404)
        return jsonify({"message": "Focus toggle queued", "id": id}), 200

    @app.route('/api/photos/<int:id>/hover', methods=['PUT'])
    def set_hover(id):
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not isinstance(data.get("hovered"), bool):
            return _error("Expected JSON body with a boolean 'hovered'", 400)
        if not simulation.set_hover(id, data["hovered"]):
            return _error("Photo not found", 404)
        return jsonify({"message": "Hover queued", "id": id}), 200

    @app.route('/api/config', methods=['PUT'])
    def update_config():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error("Expected a JSON object", 400)

        # Validate everything before queuing anything
        for key in ("tree_scale", "photo_scale"):
            if key in data and not _is_number(data[key]):
                return _error(f"'{key}' must be a number", 400)
        colors = data.get("colors", {})
        if not isinstance(colors, dict) or not all(isinstance(v, str) for v in colors.values()):
            return _error("'colors' must map color keys to strings", 400)
        counts = data.get("counts", {})
        if not isinstance(counts, dict) or not all(isinstance(v, int) and not isinstance(v, bool) for v in counts.values()):
            return _error("'counts' must map layer names to integers", 400)
        unknown = [name for name in counts if name not in simulation.layers or name == "star"]
        if unknown:
            return _error(f"Unknown or fixed-size layers: {', '.join(sorted(unknown))}", 400)

        if "tree_scale" in data:
            simulation.set_tree_scale(data["tree_scale"])
        if "photo_scale" in data:
            simulation.set_photo_scale(data["photo_scale"])
        if colors:
            simulation.set_colors(colors)
        for name, count in counts.items():
            simulation.set_layer_count(name, count)
        return jsonify({"message": "Config update queued"}), 200

    return app


class SimulationRunner(threading.Thread):
    """
    Ticks a Simulation at a fixed target rate on a background thread.

    Attributes:
        fps: Target tick rate
        tracker: Optional HandTracker; without one every tick is "no hand"
    """

    def __init__(self, simulation: Simulation, fps: float = 60.0, tracker=None, capture=None):
        super().__init__(daemon=True)
        self.simulation = simulation
        self.fps = fps
        self.tracker = tracker
        self.capture = capture
        self._stop_event = threading.Event()

    def run(self):
        period = 1.0 / self.fps
        last = time.perf_counter()
        while not self._stop_event.is_set():
            sample = None
            if self.tracker is not None and self.capture is not None:
                ok, frame = self.capture.read()
                if ok:
                    sample = self.tracker.process(frame)
            now = time.perf_counter()
            self.simulation.tick(sample, now - last)
            last = now
            self._stop_event.wait(max(0.0, period - (time.perf_counter() - now)))

    def stop(self):
        self._stop_event.set()


def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(description="treemorph control API")
    parser.add_argument("--config", help="Path to a JSON scene config")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5000)
    parser.add_argument("--camera", type=int, default=None, help="Webcam index for live hand tracking")
    parser.add_argument("--photo", action="append", default=[], help="Photo to add at startup (repeatable)")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO))
    config = load_config(args.config) if args.config else SceneConfig()
    simulation = Simulation(config)
    for path in args.photo:
        simulation.add_photo(path)

    tracker = capture = None
    if args.camera is not None:
        from .tracking import HandTracker, open_camera
        capture = open_camera(args.camera)
        if capture is not None:
            tracker = HandTracker()

    runner = SimulationRunner(simulation, tracker=tracker, capture=capture)
    runner.start()
    try:
        create_app(simulation).run(host=args.host, port=args.port, threaded=True)
    finally:
        runner.stop()
        runner.join(timeout=1.0)
        if capture is not None:
            capture.release()
        if tracker is not None:
            tracker.close()
        simulation.teardown()


if __name__ == '__main__':
    main()
