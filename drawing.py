from skimage.draw import line


def line_points(x0, y0, x1, y1):
    """Rasterize the segment between two pixels.

        The points are returned in order, starting at (x0, y0) and ending at (x1, y1).
        x is the row and y is the column.

        Returns:
            points: A list of (row, col) tuples.
    """
    rr, cc = line(int(x0), int(y0), int(x1), int(y1))
    return list(zip(rr.tolist(), cc.tolist()))


def draw_line(x0, y0, x1, y1, value, image):
    """Draw a segment on the image in place, pixels that fall outside the image are skipped.

        Args:
            x0, y0: Start pixel as (row, col).
            x1, y1: End pixel as (row, col).
            value: The gray level written on the segment.
            image: The image that gets modified.
    """
    rows, cols = image.shape
    rr, cc = line(int(x0), int(y0), int(x1), int(y1))
    inside = (rr >= 0) & (rr < rows) & (cc >= 0) & (cc < cols)
    image[rr[inside], cc[inside]] = value
    return image


def draw_dot(image, x, y, value=255):
    # 3x3 square centered on (x, y), clipped at the borders
    rows, cols = image.shape
    x, y = int(x), int(y)
    if not (0 <= x < rows and 0 <= y < cols):
        return image
    image[max(x - 1, 0):min(x + 2, rows), max(y - 1, 0):min(y + 2, cols)] = value
    return image
