import argparse
import logging
import math
import sys
from dataclasses import dataclass

import numpy as np

from drawing import draw_dot, draw_line
from image_io import load_image, save_image
from labeling import WHITE

logger = logging.getLogger(__name__)

NEEDLE_LENGTH = 10


@dataclass
class SphereParameters:
    x: int
    y: int
    radius: int


def _extent(line, threshold):
    hits = np.nonzero(line > threshold)[0]
    if hits.size == 0:
        return 0
    return int(hits[-1] - hits[0] + 1)


def detect_sphere(image, threshold):
    """Find the center and the radius of the sphere depicted in the image.

        The center is the centroid of the pixels above the threshold, the radius is the
        average of the vertical and horizontal extents through the center, halved.

        Args:
            image: Gray image of a bright sphere on a dark background.
            threshold: Pixels strictly brighter than this belong to the sphere.

        Returns:
            SphereParameters with the center as (row, col) and the radius, in pixels.
    """
    if image is None:
        raise ValueError("Cannot detect a sphere in a missing image.")
    rows, cols = np.nonzero(image > threshold)
    if rows.size == 0:
        raise ValueError(f"No pixel above the threshold {threshold}, there is no sphere to detect.")

    x = int(rows.sum()) // rows.size
    y = int(cols.sum()) // cols.size
    vertical = _extent(image[:, y], threshold)
    horizontal = _extent(image[x, :], threshold)
    radius = (vertical + horizontal) // 4
    logger.debug("Sphere at (%d, %d), radius %d", x, y, radius)
    return SphereParameters(x, y, radius)


def write_parameters(parameters, file_path):
    with open(file_path, "w") as parameter_file:
        parameter_file.write(f"{parameters.x} {parameters.y} {parameters.radius}")


def read_parameters(file_path):
    with open(file_path) as parameter_file:
        fields = parameter_file.read().split()
    if len(fields) != 3:
        raise ValueError(f"Expected 'x y radius' in {file_path}, got {fields}.")
    return SphereParameters(*(int(field) for field in fields))


def brightest_pixel(image):
    """Return the (row, col) centroid of the pixels sharing the maximum brightness."""
    rows, cols = np.nonzero(image == image.max())
    return int(rows.sum()) // rows.size, int(cols.sum()) // cols.size


def sphere_normal(parameters, x, y):
    """Unit normal of the sphere surface seen at pixel (x, y).

        With z = sqrt(r^2 - dx^2 - dy^2) the normal is (dx/z, dy/z, 1), normalized.
    """
    dx = x - parameters.x
    dy = y - parameters.y
    depth_squared = parameters.radius ** 2 - dx ** 2 - dy ** 2
    if depth_squared <= 0:
        raise ValueError(f"Pixel ({x}, {y}) is not inside the sphere {parameters}.")
    z = math.sqrt(depth_squared)
    normal = np.array([dx / z, dy / z, 1.0])
    return normal / np.linalg.norm(normal)


def light_directions(parameters, images):
    """Estimate one light source direction per image of the sphere.

        The brightest spot of a Lambertian sphere faces the light, so its normal is the
        direction of the light.

        Returns:
            directions: Array of shape (len(images), 3), one unit vector per row.
    """
    directions = []
    for image in images:
        x, y = brightest_pixel(image)
        logger.debug("Brightest pixel at (%d, %d)", x, y)
        directions.append(sphere_normal(parameters, x, y))
    return np.array(directions)


def write_directions(directions, file_path):
    np.savetxt(file_path, np.asarray(directions), fmt="%.6f")


def read_directions(file_path):
    return np.loadtxt(file_path, ndmin=2)


def surface_normals(directions, images, threshold):
    """Solve the photometric stereo equations I = S n at every pixel.

        Only pixels that are brighter than the threshold in all three images are solved,
        the others keep a zero normal and a zero albedo.

        Args:
            directions: 3x3 array, one light source direction per row.
            images: The three images taken under those light sources.
            threshold: Minimum brightness for a pixel to be used.

        Returns:
            normals: Array (rows, cols, 3) of unit normals.
            albedo: Array (rows, cols) holding the length of the solved vector.
    """
    directions = np.asarray(directions, dtype=float)
    if directions.shape != (3, 3):
        raise ValueError(f"Expected three light directions, got an array of shape {directions.shape}.")
    if len(images) != 3:
        raise ValueError(f"Expected three images, got {len(images)}.")
    if any(image is None for image in images):
        raise ValueError("Cannot compute normals from a missing image.")
    if len({image.shape for image in images}) != 1:
        raise ValueError("The images have different shapes.")

    # Raises LinAlgError when the lights are coplanar
    inverse = np.linalg.inv(directions)
    intensities = np.stack([np.asarray(image, dtype=float) for image in images], axis=-1)
    valid = np.all(intensities > threshold, axis=-1)

    # Row-vector form of n = S^-1 I for every pixel at once
    scaled = intensities @ inverse.T
    albedo = np.linalg.norm(scaled, axis=-1)
    valid &= albedo > 0
    albedo[~valid] = 0

    normals = np.zeros_like(scaled)
    normals[valid] = scaled[valid] / albedo[valid, None]
    logger.debug("Solved %d pixels", int(valid.sum()))
    return normals, albedo


def needle_map(image, normals, step, length=NEEDLE_LENGTH):
    """Draw the normals on a grid of the image: a black dot with a white needle."""
    if step < 1:
        raise ValueError(f"Step must be positive, got {step}.")
    rows, cols = image.shape
    for r in range(step, rows, step):
        for c in range(step, cols, step):
            normal = normals[r, c]
            if not normal.any():
                continue
            draw_dot(image, r, c, 0)
            draw_line(r, c, r + math.floor(length * normal[0]), c + math.floor(length * normal[1]), WHITE, image)
    return image


def albedo_image(albedo):
    # Scale to the gray range, the largest albedo becomes 255
    largest = albedo.max(initial=0)
    if largest == 0:
        return np.zeros(albedo.shape, dtype=np.int64)
    return np.floor(WHITE * albedo / largest).astype(np.int64)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Photometric stereo")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sphere = subparsers.add_parser("sphere", help="Center and radius of the sphere")
    sphere.add_argument("input_image")
    sphere.add_argument("threshold", type=int)
    sphere.add_argument("output_parameters")

    directions = subparsers.add_parser("directions", help="Light source directions from three sphere images")
    directions.add_argument("input_parameters")
    directions.add_argument("images", nargs=3)
    directions.add_argument("output_directions")

    needles = subparsers.add_parser("needles", help="Needle map of the surface normals")
    needles.add_argument("input_directions")
    needles.add_argument("images", nargs=3)
    needles.add_argument("step", type=int)
    needles.add_argument("threshold", type=int)
    needles.add_argument("output_image")

    albedo = subparsers.add_parser("albedo", help="Albedo image")
    albedo.add_argument("input_directions")
    albedo.add_argument("images", nargs=3)
    albedo.add_argument("threshold", type=int)
    albedo.add_argument("output_image")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.command == "sphere":
            parameters = detect_sphere(load_image(args.input_image), args.threshold)
            print("x =", parameters.x, "y =", parameters.y, "radius =", parameters.radius)
            write_parameters(parameters, args.output_parameters)
            return

        images = [load_image(path) for path in args.images]
        if args.command == "directions":
            found = light_directions(read_parameters(args.input_parameters), images)
            print(found)
            write_directions(found, args.output_directions)
        elif args.command == "needles":
            normals, _ = surface_normals(read_directions(args.input_directions), images, args.threshold)
            save_image(args.output_image, needle_map(images[0], normals, args.step))
        else:
            _, albedo_values = surface_normals(read_directions(args.input_directions), images, args.threshold)
            save_image(args.output_image, albedo_image(albedo_values))
    except OSError as error:
        print(error)
        sys.exit(1)


if __name__ == "__main__":
    main()
