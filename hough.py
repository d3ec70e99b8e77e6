import argparse
import logging
import math
import sys

import numpy as np

from drawing import draw_line, line_points
from image_io import load_image, save_image
from labeling import WHITE, get_labels, label_connected_components, sequential

logger = logging.getLogger(__name__)

RHO_SAMPLE = 1
THETA_SAMPLE = math.pi / 180
GAP_TOLERANCE = 10
MIN_LENGTH = 50


def accumulator(binary_image, rho_sample=RHO_SAMPLE, theta_sample=THETA_SAMPLE):
    """Build the Hough voting array of a binary edge image.

        Every white pixel (r, c) votes for all the lines rho = r*cos(theta) + c*sin(theta)
        going through it, theta sweeping a full turn.

        Args:
            binary_image: 2D array with edges marked as 255.
            rho_sample: Resolution of rho, in pixels.
            theta_sample: Resolution of theta, in radians.

        Returns:
            hough: 2D array of votes, row = rho / rho_sample, column = theta / theta_sample.
    """
    if binary_image is None:
        raise ValueError("Cannot build the accumulator of a missing image.")
    rows, cols = binary_image.shape
    max_rho = round(math.hypot(rows, cols))
    hough_rows = round(max_rho / rho_sample)
    hough_cols = round(2 * math.pi / theta_sample)

    thetas = np.arange(hough_cols) * theta_sample
    cosines, sines = np.cos(thetas), np.sin(thetas)
    columns = np.arange(hough_cols)
    hough = np.zeros((hough_rows, hough_cols), dtype=np.int64)

    for r, c in zip(*np.nonzero(binary_image == WHITE)):
        rho_rows = np.round((r * cosines + c * sines) / rho_sample).astype(np.int64)
        # A pixel votes at most once per column, so plain fancy indexing does not lose votes
        valid = (rho_rows >= 0) & (rho_rows < hough_rows)
        hough[rho_rows[valid], columns[valid]] += 1

    logger.debug("Accumulator %s, largest vote %d", hough.shape, hough.max(initial=0))
    return hough


def bucketed(hough, bucket_size):
    """Sum the votes over non-overlapping bucket_size x bucket_size blocks.

        Blocks cut by the border of the array are dropped.
    """
    if bucket_size < 1:
        raise ValueError(f"Bucket size must be positive, got {bucket_size}.")
    rows, cols = hough.shape
    bucket_rows, bucket_cols = rows // bucket_size, cols // bucket_size
    cropped = hough[:bucket_rows * bucket_size, :bucket_cols * bucket_size]
    return cropped.reshape(bucket_rows, bucket_size, bucket_cols, bucket_size).sum(axis=(1, 3))


def above_threshold(image, threshold):
    # Values below the threshold become 0, the rest 255, in place
    image[...] = np.where(image < threshold, 0, WHITE)
    return image


def find_hough_lines(hough, components, bucket_size=1, rho_sample=RHO_SAMPLE, theta_sample=THETA_SAMPLE):
    """Turn every labeled peak area of the voting array into one line.

        Args:
            hough: The voting array.
            components: Labeled image of the same shape, one label per peak area.
            bucket_size: Size of the buckets the voting array was built with.

        Returns:
            lines: List of (rho, theta) taken at the vote weighted center of every area.
    """
    if hough is None or components is None:
        raise ValueError("Cannot find lines without both the voting array and its components.")
    if hough.shape != components.shape:
        raise ValueError("The voting array and its components have different shapes.")

    lines = []
    for label in get_labels(components):
        rows, cols = np.nonzero(components == label)
        votes = hough[rows, cols].astype(np.int64)
        total = int(votes.sum())
        if total == 0:
            continue
        center_r = int(np.sum(rows * votes)) // total
        center_c = int(np.sum(cols * votes)) // total
        lines.append((center_r * bucket_size * rho_sample, center_c * bucket_size * theta_sample))
    return lines


def hough_peaks(hough, threshold, bucket_size=1, rho_sample=RHO_SAMPLE, theta_sample=THETA_SAMPLE):
    """Threshold the voting array, group the peaks with connected components and return their lines."""
    components = np.array(hough, dtype=np.int64)
    above_threshold(components, threshold)
    label_connected_components(components, colors=sequential)
    lines = find_hough_lines(hough, components, bucket_size, rho_sample, theta_sample)
    logger.debug("Found %d lines above %d votes", len(lines), threshold)
    return lines


def polar_to_cartesian(rows, cols, rho, theta):
    """Intersect the line rho = x*cos(theta) + y*sin(theta) with the border of the image.

        Returns:
            points: The distinct (row, col) border points of the line, in the order
                left border, top border, right border, bottom border.
    """
    points = []
    cosine, sine = math.cos(theta), math.sin(theta)
    if abs(cosine) > 1e-9:
        x = int(rho / cosine)
        if 0 <= x < rows:
            points.append((x, 0))
    if abs(sine) > 1e-9:
        y = int(rho / sine)
        if 0 <= y < cols:
            points.append((0, y))
    if abs(cosine) > 1e-9:
        y = cols - 1
        x = round((rho - y * sine) / cosine)
        if 0 <= x < rows:
            points.append((x, y))
    if abs(sine) > 1e-9:
        x = rows - 1
        y = round((rho - x * cosine) / sine)
        if 0 <= y < cols:
            points.append((x, y))
    return list(dict.fromkeys(points))


def draw_hough_lines(image, lines):
    rows, cols = image.shape
    for rho, theta in lines:
        points = polar_to_cartesian(rows, cols, rho, theta)
        if len(points) == 2:
            (x0, y0), (x1, y1) = points
            draw_line(x0, y0, x1, y1, WHITE, image)
    return image


def trimmed_segments(edges, points, gap_tolerance=GAP_TOLERANCE, min_length=MIN_LENGTH):
    """Split a rasterized line into the parts supported by the edge image.

        Runs of edge pixels separated by at most gap_tolerance background pixels are joined,
        the joined runs longer than min_length are kept.

        Yields:
            (start, end): The first and last edge pixel of every kept segment.
    """
    start = end = None
    length = gap = 0
    for point in points:
        if edges[point] == WHITE:
            if start is None:
                start, length = point, 1
            else:
                length += gap + 1
            end, gap = point, 0
        elif start is not None:
            gap += 1
            if gap > gap_tolerance:
                if length > min_length:
                    yield start, end
                start = end = None
                length = gap = 0
    if start is not None and length > min_length:
        yield start, end


def draw_trimmed_hough_lines(image, edges, lines, gap_tolerance=GAP_TOLERANCE, min_length=MIN_LENGTH):
    """Draw only the parts of the lines that lie on the binary edge image."""
    if image.shape != edges.shape:
        raise ValueError("The image and the edge image have different shapes.")
    rows, cols = image.shape
    for rho, theta in lines:
        points = polar_to_cartesian(rows, cols, rho, theta)
        if len(points) != 2:
            continue
        (x0, y0), (x1, y1) = points
        for (sx, sy), (ex, ey) in trimmed_segments(edges, line_points(x0, y0, x1, y1), gap_tolerance, min_length):
            draw_line(sx, sy, ex, ey, WHITE, image)
    return image


def main(argv=None):
    parser = argparse.ArgumentParser(description="Hough transform line detection")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    accumulate = subparsers.add_parser("accumulate", help="Build the Hough image and the voting array")
    accumulate.add_argument("input_binary_image")
    accumulate.add_argument("output_hough_image")
    accumulate.add_argument("output_voting_array")
    accumulate.add_argument("--bucket-size", type=int, default=1)

    lines = subparsers.add_parser("lines", help="Draw the lines found in a voting array")
    lines.add_argument("input_gray_image")
    lines.add_argument("voting_array")
    lines.add_argument("threshold", type=int)
    lines.add_argument("output_gray_image")
    lines.add_argument("binary_edges", nargs="?", help="Binary edge image, enables line trimming")
    lines.add_argument("--bucket-size", type=int, default=1)
    lines.add_argument("--gap-tolerance", type=int, default=GAP_TOLERANCE)
    lines.add_argument("--min-length", type=int, default=MIN_LENGTH)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.command == "accumulate":
            hough = accumulator(load_image(args.input_binary_image))
            save_image(args.output_hough_image, hough)
            save_image(args.output_voting_array, bucketed(hough, args.bucket_size))
            return

        image = load_image(args.input_gray_image)
        found = hough_peaks(load_image(args.voting_array), args.threshold, args.bucket_size)
        print("Lines:", len(found))
        if args.binary_edges is None:
            draw_hough_lines(image, found)
        else:
            draw_trimmed_hough_lines(image, load_image(args.binary_edges), found,
                                     args.gap_tolerance, args.min_length)
        save_image(args.output_gray_image, image)
    except OSError as error:
        print(error)
        sys.exit(1)


if __name__ == "__main__":
    main()
