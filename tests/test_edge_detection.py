import numpy as np
import pytest

from edge_detection import main, sobel_derivatives, sobel_magnitude
from image_io import load_image, save_image


@pytest.fixture
def step_edge():
    image = np.zeros((6, 6), dtype=np.uint8)
    image[:, 3:] = 100
    return image


def test_step_edge_magnitude(step_edge):
    magnitude = sobel_magnitude(step_edge)
    assert magnitude[2].tolist()[1:5] == [0, 400, 400, 0]


def test_derivative_signs(step_edge):
    gx, gy = sobel_derivatives(step_edge)
    assert gx[2, 2] == 400
    assert gy[2, 2] == 0

    gx, gy = sobel_derivatives(step_edge.T)
    assert gx[2, 2] == 0
    # brighter rows are further down, i.e. darker upward
    assert gy[2, 2] == -400


def test_constant_image_borders_see_zero_padding():
    magnitude = sobel_magnitude(np.full((5, 5), 10, dtype=np.uint8))
    assert magnitude[2, 2] == 0
    assert magnitude[0, 0] == 42


def test_magnitude_is_not_clipped():
    image = np.zeros((5, 5), dtype=np.uint8)
    image[:, 2:] = 255
    assert sobel_magnitude(image).max() == 1020


def test_missing_image():
    with pytest.raises(ValueError):
        sobel_magnitude(None)


def test_sobel_program(tmp_path, step_edge):
    source = tmp_path / "gray.pgm"
    target = tmp_path / "edges.pgm"
    save_image(source, step_edge)
    main([str(source), str(target)])
    assert np.array_equal(load_image(target), sobel_magnitude(step_edge))
