import argparse
import logging
import math
import sys
from dataclasses import dataclass

import numpy as np

from drawing import draw_dot, draw_line
from image_io import load_image, save_image
from labeling import WHITE, get_labels

logger = logging.getLogger(__name__)

ORIENTATION_LENGTH = 30
ROUNDEDNESS_TOLERANCE = 0.02


@dataclass
class ObjectData:
    """The attributes of one labeled object.

        x and y are the row and column of the centroid, a, b and c are the second moments
        about it, orientation is the angle of the axis of least inertia in degrees.
    """
    label: int
    area: int = 0
    x: int = 0
    y: int = 0
    a: float = 0.0
    b: float = 0.0
    c: float = 0.0
    orientation: float = 0.0
    e_min: float = 0.0
    e_max: float = 0.0
    roundedness: float = 0.0

    @property
    def theta(self):
        return math.radians(self.orientation)


def second_moment(a, b, c, theta):
    return a * math.sin(theta) ** 2 - b * math.sin(theta) * math.cos(theta) + c * math.cos(theta) ** 2


def get_objects_data(image):
    """Calculate the attributes of every connected component of a labeled image.

        Args:
            image: A labeled image, every non-zero value is the label of one object.

        Returns:
            objects: Dictionary label -> ObjectData, in ascending label order.
    """
    if image is None:
        raise ValueError("Cannot measure objects of a missing image.")

    objects = {}
    for label in get_labels(image):
        rows, cols = np.nonzero(image == label)
        obj = ObjectData(label=label, area=len(rows))
        # Integer centroid, the moments are taken about the pixel it falls on
        obj.x = int(rows.sum()) // obj.area
        obj.y = int(cols.sum()) // obj.area

        dr = rows - obj.x
        dc = cols - obj.y
        obj.a = float(np.sum(dr * dr))
        obj.b = float(2 * np.sum(dr * dc))
        obj.c = float(np.sum(dc * dc))

        theta1 = math.atan2(obj.b, obj.a - obj.c) / 2.0
        theta2 = theta1 + math.pi / 2.0
        obj.e_min = second_moment(obj.a, obj.b, obj.c, theta1)
        obj.e_max = second_moment(obj.a, obj.b, obj.c, theta2)
        obj.orientation = math.degrees(theta1)
        # A lone pixel has no preferred axis
        obj.roundedness = obj.e_min / obj.e_max if obj.e_max != 0 else 1.0
        objects[label] = obj

    logger.debug("Measured %d objects", len(objects))
    return objects


def draw_orientation(image, obj, value=WHITE):
    """Draw a dot on the centroid of the object and its orientation line starting from it."""
    draw_dot(image, obj.x, obj.y, value)
    end_x = int(obj.x + ORIENTATION_LENGTH * math.cos(obj.theta))
    end_y = int(obj.y + ORIENTATION_LENGTH * math.sin(obj.theta))
    draw_line(obj.x, obj.y, end_x, end_y, value, image)
    return image


def write_database(objects, file_path):
    """Write one line per object: label x y e_min area roundedness orientation."""
    with open(file_path, "w") as database:
        for obj in objects.values():
            database.write(f"{obj.label} {obj.x} {obj.y} {obj.e_min:g} {obj.area} "
                           f"{obj.roundedness:g} {obj.orientation:g}\n")


def read_database(file_path):
    """Read back the objects written by write_database.

        Returns:
            objects: List of ObjectData holding the stored attributes.
    """
    objects = []
    with open(file_path) as database:
        for line in database:
            fields = line.split()
            if not fields:
                continue
            if len(fields) != 7:
                raise ValueError(f"Malformed database line: {line.strip()!r}")
            label, x, y, e_min, area, roundedness, orientation = fields
            objects.append(ObjectData(label=int(label), x=int(x), y=int(y), e_min=float(e_min),
                                      area=int(area), roundedness=float(roundedness),
                                      orientation=float(orientation)))
    return objects


def write_stats(image, objects, file_path):
    write_database(objects, file_path)
    for obj in objects.values():
        draw_orientation(image, obj)
    return image


def recognize_objects(image, database, tolerance=ROUNDEDNESS_TOLERANCE):
    """Annotate the objects of a labeled image that match an entry of the database.

        Only the roundedness is compared since it does not change with translation,
        scaling or rotation.

        Args:
            image: The labeled image, modified in place.
            database: List of known ObjectData.
            tolerance: The largest accepted roundedness difference.

        Returns:
            recognized: The labels of the recognized objects.
    """
    objects = get_objects_data(image)
    recognized = []
    for obj in objects.values():
        if any(abs(obj.roundedness - known.roundedness) <= tolerance for known in database):
            recognized.append(obj.label)

    # Draw only once everything is measured, the annotations use label values
    for label in recognized:
        draw_orientation(image, objects[label])
    logger.debug("Recognized %d of %d objects", len(recognized), len(objects))
    return recognized


def main(argv=None):
    parser = argparse.ArgumentParser(description="Object attributes of a labeled image")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    stats = subparsers.add_parser("stats", help="Write the object database and draw the orientations")
    stats.add_argument("input_labeled_image")
    stats.add_argument("output_database")
    stats.add_argument("output_image")

    recognize = subparsers.add_parser("recognize", help="Draw the orientation of the objects found in a database")
    recognize.add_argument("input_labeled_image")
    recognize.add_argument("database")
    recognize.add_argument("output_image")
    recognize.add_argument("--tolerance", type=float, default=ROUNDEDNESS_TOLERANCE)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        image = load_image(args.input_labeled_image)
        if args.command == "stats":
            objects = get_objects_data(image)
            write_stats(image, objects, args.output_database)
            print("Objects:", len(objects))
        else:
            recognized = recognize_objects(image, read_database(args.database), args.tolerance)
            print("Recognized:", recognized)
        save_image(args.output_image, image)
    except OSError as error:
        print(error)
        sys.exit(1)


if __name__ == "__main__":
    main()
