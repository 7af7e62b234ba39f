import cv2
import numpy as np
import pytest

from treemorph.app import create_app
from treemorph.simulation import Simulation

DT = 1.0 / 60.0


@pytest.fixture
def sim(small_config):
    simulation = Simulation(small_config)
    yield simulation
    simulation.teardown()


@pytest.fixture
def client(sim):
    app = create_app(sim)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def image_path(tmp_path):
    path = tmp_path / "portrait.png"
    cv2.imwrite(str(path), np.full((120, 80, 3), 255, dtype=np.uint8))
    return str(path)


def test_state_before_first_tick(client):
    resp = client.get("/api/state")
    assert resp.status_code == 200
    assert resp.get_json()["frame"] == 0


def test_state_after_tick(client, sim):
    sim.tick(None, DT)
    data = client.get("/api/state").get_json()
    assert data["frame"] == 1
    assert data["layers"]["foliage"]["count"] == 300
    assert "positions" not in data["layers"]["star"]
    full = client.get("/api/state?elements=1").get_json()
    assert len(full["layers"]["star"]["positions"]) == 1


def test_add_list_and_delete_photo(client, sim, image_path, wait_for):
    resp = client.post("/api/photos", json={"source": image_path})
    assert resp.status_code == 201
    photo_id = resp.get_json()["id"]

    def loaded():
        sim.tick(None, DT)
        listing = client.get("/api/photos").get_json()
        return listing and listing[0]["status"] == "ready"

    assert wait_for(loaded)
    listing = client.get("/api/photos").get_json()
    assert listing[0]["id"] == photo_id
    assert listing[0]["aspect"] == pytest.approx(80 / 120)

    assert client.delete(f"/api/photos/{photo_id}").status_code == 204
    assert client.delete(f"/api/photos/{photo_id}").status_code == 404
    sim.tick(None, DT)
    assert client.get("/api/photos").get_json() == []


def test_add_photo_requires_source(client):
    resp = client.post("/api/photos", json={})
    assert resp.status_code == 400
    assert "error" in resp.get_json()


def test_focus_and_hover(client, sim):
    photo_id = sim.add_photo(np.zeros((10, 10, 3), dtype=np.uint8))
    sim.tick(None, DT)
    assert client.put(f"/api/photos/{photo_id}/focus").status_code == 200
    sim.tick(None, DT)
    assert sim.photos.focus.focused_id == photo_id

    assert client.put(f"/api/photos/{photo_id}/hover", json={"hovered": True}).status_code == 200
    assert client.put(f"/api/photos/{photo_id}/hover", json={"hovered": "yes"}).status_code == 400
    sim.tick(None, DT)
    assert sim.photos.elements[photo_id].hovered

    assert client.put("/api/photos/77/focus").status_code == 404
    assert client.put("/api/photos/77/hover", json={"hovered": False}).status_code == 404


def test_config_update(client, sim):
    resp = client.put("/api/config", json={
        "tree_scale": 1.4,
        "photo_scale": 1.5,
        "colors": {"light": "#ff0000"},
        "counts": {"heavy": 2},
    })
    assert resp.status_code == 200
    out = sim.tick(None, DT)
    assert sim.physics.scale_target == pytest.approx(1.4)
    assert sim.photos.scale_target == pytest.approx(1.5)
    assert out.layers["light"].color == "#ff0000"
    assert len(out.layers["heavy"]) == 2


@pytest.mark.parametrize("payload", [
    {"tree_scale": "big"},
    {"colors": ["#fff"]},
    {"counts": {"heavy": 1.5}},
    {"counts": {"star": 2}},
    {"counts": {"nope": 2}},
])
def test_config_rejects_bad_payloads(client, sim, payload):
    assert client.put("/api/config", json=payload).status_code == 400
    out = sim.tick(None, DT)
    assert out.events == []


def test_config_requires_object(client):
    assert client.put("/api/config", data="oops", content_type="application/json").status_code == 400
