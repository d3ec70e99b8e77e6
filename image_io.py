import logging

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def load_image(file_path):
    """Load a grayscale raster image (pgm, bmp, png...) keeping its bit depth.

        Args:
            file_path: Path to the image on disk.

        Returns:
            image: A 2D array indexed as image[row, col].
    """
    # ANYDEPTH without a color flag loads a single channel and keeps 16 bit pgm files intact
    image = cv2.imread(str(file_path), cv2.IMREAD_ANYDEPTH)
    if image is None:
        raise OSError(f"Can't open file {file_path}")
    logger.debug("Loaded %s with shape %s and dtype %s", file_path, image.shape, image.dtype)
    return image


def save_image(file_path, image):
    """Save a grayscale image, widening to 16 bit when the values do not fit in a byte.

        Args:
            file_path: Destination path, the extension selects the format.
            image: A 2D array of non-negative values.
    """
    image = np.asarray(image)
    if image.size and image.min() < 0:
        raise ValueError("Cannot save an image with negative pixel values.")
    if image.size and image.max() > np.iinfo(np.uint16).max:
        raise ValueError(f"Cannot save pixel values above {np.iinfo(np.uint16).max}.")
    if image.size and image.max() > 255:
        out = image.astype(np.uint16)
    else:
        out = image.astype(np.uint8)

    if not cv2.imwrite(str(file_path), out):
        raise OSError(f"Can't write to file {file_path}")
    logger.debug("Saved %s as %s", file_path, out.dtype)
