import argparse
import logging
import sys

import numpy as np
from scipy import ndimage

from image_io import load_image, save_image

logger = logging.getLogger(__name__)

# x grows to the right (columns), y grows upward (towards row 0)
SOBEL_X = np.array([[-1, 0, 1],
                    [-2, 0, 2],
                    [-1, 0, 1]])
SOBEL_Y = np.array([[1, 2, 1],
                    [0, 0, 0],
                    [-1, -2, -1]])


def sobel_derivatives(image):
    """Apply the 3x3 Sobel masks, pixels outside the image count as 0.

        Args:
            image: A 2D gray image.

        Returns:
            gx, gy: The horizontal and vertical derivatives, same shape as the image.
    """
    image = np.asarray(image, dtype=np.int64)
    gx = ndimage.correlate(image, SOBEL_X, mode='constant', cval=0)
    gy = ndimage.correlate(image, SOBEL_Y, mode='constant', cval=0)
    return gx, gy


def sobel_magnitude(image):
    """Gradient magnitude of the image, truncated to integers.

        The result can go above 255, it is not rescaled.
    """
    if image is None:
        raise ValueError("Cannot detect edges of a missing image.")
    gx, gy = sobel_derivatives(image)
    magnitude = np.floor(np.sqrt(gx ** 2 + gy ** 2)).astype(np.int64)
    logger.debug("Largest gradient magnitude: %d", magnitude.max(initial=0))
    return magnitude


def main(argv=None):
    parser = argparse.ArgumentParser(description="Sobel edge detection")
    parser.add_argument("input_gray_image")
    parser.add_argument("output_gray_image")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        image = load_image(args.input_gray_image)
        save_image(args.output_gray_image, sobel_magnitude(image))
    except OSError as error:
        print(error)
        sys.exit(1)


if __name__ == "__main__":
    main()
