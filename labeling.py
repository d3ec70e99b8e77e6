import argparse
import logging
import sys

import numpy as np

from image_io import load_image, save_image

logger = logging.getLogger(__name__)

WHITE = 255
RESOLUTIONS = ("full", "shallow")


def is_white(image):
    return image == WHITE


def is_nonzero(image):
    return image != 0


def above(threshold):
    def predicate(image):
        return image > threshold
    return predicate


def spaced_grays(representatives):
    """Give every component an evenly spaced gray level.

        White is never handed out so that annotations drawn in 255 afterwards stay visible.

        Args:
            representatives: The resolved component labels.

        Returns:
            colors: Dictionary representative -> gray level, in ascending representative order.
    """
    step = WHITE // (len(representatives) + 1)
    if step == 0:
        raise ValueError(f"{len(representatives)} components cannot get distinct gray levels below {WHITE}.")
    return {rep: step * (k + 1) for k, rep in enumerate(sorted(representatives))}


def sequential(representatives):
    """Number the components 1, 2, ..., n in ascending representative order."""
    return {rep: k + 1 for k, rep in enumerate(sorted(representatives))}


COLOR_POLICIES = {"spaced": spaced_grays, "sequential": sequential}


def find(equiv, label):
    # Walk up to the root, then point every label on the path straight at it
    root = label
    while equiv[root] != root:
        root = equiv[root]
    while equiv[label] != root:
        equiv[label], label = root, equiv[label]
    return root


def first_pass(mask, resolution="full"):
    """Assign provisional labels with a raster scan and record the equivalences.

        Only the causal neighbors upper, left and upper-left are examined, so two regions
        touching only through an upper-right / lower-left diagonal are not merged.

        Args:
            mask: Boolean 2D array, True for foreground pixels.
            resolution: "full" merges whole classes (union-find), "shallow" only rewrites
                the entry of the left label.

        Returns:
            labels: 2D array of provisional labels, 0 on the background.
            equiv: Dictionary provisional label -> equivalent label.
    """
    rows, cols = mask.shape
    labels = np.zeros((rows, cols), dtype=np.int64)
    equiv = {}
    label = 0

    for r in range(rows):
        for c in range(cols):
            if not mask[r, c]:
                continue
            upper = int(labels[r - 1, c]) if r > 0 else 0
            left = int(labels[r, c - 1]) if c > 0 else 0
            upper_left = int(labels[r - 1, c - 1]) if r > 0 and c > 0 else 0

            if upper == 0 and left == 0 and upper_left == 0:
                label += 1
                equiv[label] = label
                labels[r, c] = label
            elif upper != 0 and left != 0:
                if resolution == "full":
                    root = find(equiv, upper)
                    equiv[find(equiv, left)] = root
                    labels[r, c] = root
                else:
                    equiv[left] = equiv[upper]
                    labels[r, c] = equiv[left]
            elif left != 0:
                labels[r, c] = equiv[left]
            elif upper != 0:
                labels[r, c] = equiv[upper]
            else:
                labels[r, c] = equiv[upper_left]

    logger.debug("First pass allocated %d provisional labels", label)
    return labels, equiv


def resolve_equivalences(equiv, resolution="full"):
    """Flatten the equivalence map in place and return the component representatives.

        With "full" every label ends up pointing at its root. With "shallow" each entry is
        re-resolved a single time in ascending label order, chains deeper than one hop may
        stay split into several components.
    """
    if resolution == "full":
        for label in equiv:
            find(equiv, label)
    else:
        for label in sorted(equiv):
            equiv[label] = equiv[equiv[label]]
    return sorted(set(equiv.values()))


def lookup_table(equiv, colors):
    # provisional label -> output value, index 0 stays background
    table = np.zeros(max(equiv, default=0) + 1, dtype=np.int64)
    for label, target in equiv.items():
        table[label] = colors[target]
    return table


def second_pass(image, labels, table):
    # every value is computed from the provisional plane before anything is written
    image[...] = table[labels]
    return image


def label_connected_components(image, foreground=is_white, colors=spaced_grays, resolution="full"):
    """Label the connected components of an image in place.

        Args:
            image: 2D integer array, modified in place.
            foreground: Callable returning the boolean foreground mask of the image.
            colors: Color policy (callable or one of "spaced", "sequential") mapping the
                component representatives to their output values.
            resolution: Equivalence resolution policy, "full" or "shallow".

        Returns:
            image: The same array, every component painted with its own value and the
                background set to 0.
    """
    if image is None:
        raise ValueError("Cannot label a missing image.")
    if image.ndim != 2:
        raise ValueError(f"Expected a 2D image, got shape {image.shape}.")
    if resolution not in RESOLUTIONS:
        raise ValueError(f"Unknown resolution policy {resolution!r}, expected one of {RESOLUTIONS}.")
    if isinstance(colors, str):
        colors = COLOR_POLICIES[colors]

    mask = np.asarray(foreground(image), dtype=bool)
    labels, equiv = first_pass(mask, resolution)
    representatives = resolve_equivalences(equiv, resolution)
    table = lookup_table(equiv, colors(representatives))

    if np.issubdtype(image.dtype, np.integer) and table.max() > np.iinfo(image.dtype).max:
        raise ValueError(f"{len(representatives)} components do not fit in an image of type {image.dtype}.")

    second_pass(image, labels, table)
    logger.debug("Labeled %d components", len(representatives))
    return image


def get_labels(image):
    """Return the sorted list of the non-zero values of a labeled image."""
    if image is None:
        raise ValueError("Cannot read labels of a missing image.")
    return np.unique(image[image != 0]).tolist()


def binary_threshold(image, threshold):
    """Make the image binary in place: values strictly above the threshold become 255, the rest 0."""
    if image is None:
        raise ValueError("Cannot threshold a missing image.")
    image[...] = np.where(image > threshold, WHITE, 0)
    return image


def main(argv=None):
    parser = argparse.ArgumentParser(description="Binarize an image and label its connected components")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    binarize = subparsers.add_parser("binarize", help="Threshold a gray image into a binary one")
    binarize.add_argument("input_image")
    binarize.add_argument("threshold", type=int)
    binarize.add_argument("output_image")

    label = subparsers.add_parser("label", help="Label the connected components of a binary image")
    label.add_argument("input_image")
    label.add_argument("output_image")
    label.add_argument("--colors", choices=sorted(COLOR_POLICIES), default="spaced")
    label.add_argument("--resolution", choices=RESOLUTIONS, default="full")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        image = load_image(args.input_image)
        if args.command == "binarize":
            binary_threshold(image, args.threshold)
        else:
            # labels may outgrow the 8 bit input, the output is saved as 16 bit when needed
            image = image.astype(np.int64)
            label_connected_components(image, colors=args.colors, resolution=args.resolution)
            print("Components:", len(get_labels(image)))
        save_image(args.output_image, image)
    except OSError as error:
        print(error)
        sys.exit(1)


if __name__ == "__main__":
    main()
