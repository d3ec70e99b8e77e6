import numpy as np
import pytest

from image_io import load_image, save_image
from photometric_stereo import (SphereParameters, albedo_image, brightest_pixel, detect_sphere, light_directions,
                                main, needle_map, read_directions, read_parameters, sphere_normal, surface_normals,
                                write_directions, write_parameters)

SPHERE = SphereParameters(50, 50, 40)


@pytest.fixture
def disc():
    rows, cols = np.indices((101, 101))
    return np.where((rows - 50) ** 2 + (cols - 50) ** 2 <= 40 ** 2, 200, 10).astype(np.uint8)


def ground_truth(shape=(101, 101)):
    rows, cols = np.indices(shape)
    dx, dy = rows - 50, cols - 50
    z = np.sqrt(np.clip(40 ** 2 - dx ** 2 - dy ** 2, 0, None))
    return np.dstack((dx, dy, z)) / 40


def test_detect_sphere(disc):
    assert detect_sphere(disc, 100) == SPHERE


def test_detect_sphere_without_sphere(disc):
    with pytest.raises(ValueError):
        detect_sphere(disc, 250)


def test_parameters_round_trip(tmp_path):
    path = tmp_path / "sphere.txt"
    write_parameters(SPHERE, path)
    assert path.read_text() == "50 50 40"
    assert read_parameters(path) == SPHERE


def test_brightest_pixel_is_centroid_of_ties():
    image = np.zeros((5, 5), dtype=np.uint8)
    image[1, 1] = image[1, 3] = image[3, 3] = 9
    assert brightest_pixel(image) == (1, 2)


def test_sphere_normal():
    assert np.allclose(sphere_normal(SPHERE, 50, 50), [0, 0, 1])
    normal = sphere_normal(SPHERE, 50, 74)
    assert np.allclose(normal, [0, 24 / 40, 32 / 40])


def test_sphere_normal_outside():
    with pytest.raises(ValueError):
        sphere_normal(SPHERE, 50, 90)


def test_light_directions(render_sphere, lights):
    images = [render_sphere(light) for light in lights]
    found = light_directions(SPHERE, images)
    assert found.shape == (3, 3)
    assert np.allclose(found[0], [0, 0, 1])
    assert np.all(np.sum(found * lights, axis=1) > 0.999)


def test_directions_round_trip(tmp_path, lights):
    path = tmp_path / "directions.txt"
    write_directions(lights, path)
    assert np.allclose(read_directions(path), lights, atol=1e-6)


def test_surface_normals_recover_the_sphere(render_sphere, lights):
    images = [render_sphere(light) for light in lights]
    normals, albedo = surface_normals(lights, images, 0)
    valid = albedo > 0

    assert valid[50, 50]
    assert not valid[0, 0]
    assert np.allclose(normals[valid], ground_truth()[valid], atol=1e-9)
    assert np.allclose(albedo[valid], 200)
    assert not normals[~valid].any()


def test_surface_normals_need_three_lights(render_sphere, lights):
    images = [render_sphere(light) for light in lights]
    with pytest.raises(ValueError):
        surface_normals(lights[:2], images, 0)
    with pytest.raises(ValueError):
        surface_normals(lights, images[:2], 0)


def test_coplanar_lights(render_sphere, lights):
    images = [render_sphere(light) for light in lights]
    coplanar = np.array([[1, 0, 0], [0, 1, 0], [1, 1, 0]], dtype=float)
    with pytest.raises(np.linalg.LinAlgError):
        surface_normals(coplanar, images, 0)


def test_needle_map():
    image = np.full((40, 40), 100, dtype=np.uint8)
    normals = np.zeros((40, 40, 3))
    normals[10, 10] = [1, 0, 0]
    needle_map(image, normals, 10)
    assert image[9, 9] == 0
    assert np.all(image[10:21, 10] == 255)
    # grid points without a normal are left alone
    assert image[20, 20] == 100


def test_needle_map_step():
    with pytest.raises(ValueError):
        needle_map(np.zeros((4, 4)), np.zeros((4, 4, 3)), 0)


def test_albedo_image():
    assert albedo_image(np.array([[0, 50], [100, 25]], dtype=float)).tolist() == [[0, 127], [255, 63]]
    assert not albedo_image(np.zeros((2, 2))).any()


def test_programs(tmp_path, render_sphere, lights, disc):
    sphere_image = tmp_path / "sphere.pgm"
    parameters = tmp_path / "sphere.txt"
    directions = tmp_path / "directions.txt"
    needles = tmp_path / "needles.pgm"
    albedo = tmp_path / "albedo.pgm"
    save_image(sphere_image, disc)
    image_paths = []
    for index, light in enumerate(lights):
        path = tmp_path / f"image{index}.pgm"
        save_image(path, np.floor(render_sphere(light)).astype(np.uint8))
        image_paths.append(str(path))

    main(["sphere", str(sphere_image), "100", str(parameters)])
    assert read_parameters(parameters) == SPHERE

    main(["directions", str(parameters), *image_paths, str(directions)])
    assert np.all(np.sum(read_directions(directions) * lights, axis=1) > 0.99)

    main(["needles", str(directions), *image_paths, "10", "0", str(needles)])
    assert load_image(needles).shape == (101, 101)

    main(["albedo", str(directions), *image_paths, "0", str(albedo)])
    assert load_image(albedo).max() == 255
