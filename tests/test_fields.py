import numpy as np
import pytest

from treemorph.fields import PositionFieldGenerator, sample_box, sample_cylinder


def test_scattered_anchors_within_shell(generator):
    elements = generator.generate("foliage", 2000)
    radii = np.linalg.norm(elements.scattered, axis=1)
    assert radii.min() >= 15.0 * 0.5 - 1e-9
    assert radii.max() <= 15.0 + 1e-9


def test_ornament_shell_bounds(generator):
    elements = generator.generate("heavy", 500, shell_inner=0.8, shell_spread=0.5)
    radii = np.linalg.norm(elements.scattered, axis=1)
    assert radii.min() >= 12.0 - 1e-9
    assert radii.max() <= 19.5 + 1e-9


def test_assembled_anchors_inside_cone(generator):
    elements = generator.generate("foliage", 2000)
    y = elements.assembled[:, 1]
    assert y.min() >= -6.0 and y.max() <= 6.0
    taper = 1.0 - (y + 6.0) / 12.0
    r = np.hypot(elements.assembled[:, 0], elements.assembled[:, 2])
    assert np.all(r <= 5.0 * taper + 1e-9)


def test_annulus_bias_and_height_margin(generator):
    elements = generator.generate("light", 500, radial_range=(0.8, 1.3), turns=3.0, height_margin=1.0)
    y = elements.assembled[:, 1]
    assert np.all(np.abs(y) <= 5.5 + 1e-9)
    taper = 1.0 - (y + 6.0) / 12.0
    r = np.hypot(elements.assembled[:, 0], elements.assembled[:, 2])
    assert np.all(r >= 0.8 * 5.0 * taper - 1e-9)
    assert np.all(r <= 1.3 * 5.0 * taper + 1e-9)


def test_same_seed_same_anchors():
    a = PositionFieldGenerator(12.0, 5.0, 15.0, seed=99).generate("foliage", 100)
    b = PositionFieldGenerator(12.0, 5.0, 15.0, seed=99).generate("foliage", 100)
    np.testing.assert_array_equal(a.assembled, b.assembled)
    np.testing.assert_array_equal(a.scattered, b.scattered)
    np.testing.assert_array_equal(a.seeds, b.seeds)


def test_layers_draw_independent_streams(generator):
    a = generator.generate("heavy", 50)
    b = generator.generate("light", 50)
    assert not np.allclose(a.assembled, b.assembled)


def test_seed_channels_do_not_move_anchors():
    a = PositionFieldGenerator(12.0, 5.0, 15.0, seed=5).generate("snow", 64, seed_channels=1)
    b = PositionFieldGenerator(12.0, 5.0, 15.0, seed=5).generate("snow", 64, seed_channels=3)
    np.testing.assert_array_equal(a.assembled, b.assembled)
    np.testing.assert_array_equal(a.scattered, b.scattered)
    assert b.seeds.shape == (64, 3)
    assert np.all((b.seeds >= 0.0) & (b.seeds < 1.0))


@pytest.mark.parametrize("count", [0, -4])
def test_zero_count_is_empty(generator, count):
    elements = generator.generate("foliage", count)
    assert len(elements) == 0
    assert elements.assembled.shape == (0, 3)


def test_size_and_orientation_ranges(generator):
    elements = generator.generate("heavy", 300, size_range=(0.5, 2.0), random_orientation=True)
    assert elements.size_base.min() >= 0.5 and elements.size_base.max() <= 2.0
    assert np.all(elements.base_euler[:, 2] == 0.0)
    assert elements.base_euler[:, :2].max() <= np.pi


def test_box_and_cylinder_samplers():
    rng = np.random.default_rng(0)
    box = sample_box(rng, 200, (15.0, 15.0, 15.0), center=(0.0, 10.0, 0.0))
    assert np.all(np.abs(box[:, 0]) <= 7.5)
    assert np.all((box[:, 1] >= 2.5) & (box[:, 1] <= 17.5))

    cyl = sample_cylinder(rng, 200, (2.0, 17.0), (-10.0, 30.0))
    r = np.hypot(cyl[:, 0], cyl[:, 2])
    assert r.min() >= 2.0 - 1e-9 and r.max() <= 17.0 + 1e-9
    assert cyl[:, 1].min() >= -10.0 and cyl[:, 1].max() <= 30.0
