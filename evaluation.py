import argparse
import logging
import sys

from matplotlib import pyplot as plt
import torch
from torch.nn.functional import normalize

import numpy as np

from image_io import load_image
from photometric_stereo import read_directions, read_parameters, surface_normals

logger = logging.getLogger(__name__)

ANGLE_THRESHOLDS = (11.25, 22.5, 30)


def sphere_ground_truth_normals(parameters, shape):
    """Analytic normals of the sphere for every pixel of an image of the given shape.

        Args:
            parameters: SphereParameters of the sphere.
            shape: (rows, cols) of the image.

        Returns:
            normals: Array (rows, cols, 3) of unit normals, zero outside the sphere.
            mask: Boolean array (rows, cols), True inside the sphere.
    """
    rows, cols = np.indices(shape)
    dx = rows - parameters.x
    dy = cols - parameters.y
    depth_squared = parameters.radius ** 2 - dx ** 2 - dy ** 2
    mask = depth_squared > 0
    z = np.sqrt(np.where(mask, depth_squared, 0))

    # (dx, dy, z) has the length of the radius on the sphere surface
    normals = np.dstack((dx, dy, z)).astype(float) / max(parameters.radius, 1)
    normals[~mask] = 0
    return normals, mask


def angle_error_summary(pred_norm, gt_norm, mask):
    """Angle error statistics between predicted and ground truth normals on the valid pixels.

        Returns:
            Dictionary with the mean, median and RMSE of the error in degrees, and the
            percentage of pixels under each of ANGLE_THRESHOLDS. Empty when no pixel is valid.
    """
    pred = pred_norm.astype(float)
    gt = gt_norm.astype(float)
    nv = np.asarray(mask, dtype=bool)

    # Normalize both vectors, the zero ones are left out by the mask
    with np.errstate(invalid='ignore', divide='ignore'):
        gt = gt / np.linalg.norm(gt, axis=2, keepdims=True)
        pred = pred / np.linalg.norm(pred, axis=2, keepdims=True)

    # Compute dot product and keep only valid pixels
    dp = np.sum(gt * pred, axis=2)
    t = np.clip(dp[nv], -1, 1)

    e = np.degrees(np.arccos(t))
    e = e[~np.isnan(e)]  # Exclude NaN values
    if len(e) == 0:
        return {}

    summary = {
        'mean': float(np.mean(e)),
        'median': float(np.median(e)),
        'rmse': float(np.sqrt(np.mean(e ** 2))),
    }
    for threshold in ANGLE_THRESHOLDS:
        summary[threshold] = float(np.mean(e < threshold) * 100)
    return summary


def angle_error_under_threshold(values: torch.Tensor, threshold: float):
    return torch.sum(values < threshold) / values.numel()


def normals_angle_difference(prediction: torch.Tensor, target: torch.Tensor,
                             mask: torch.Tensor = None) -> torch.Tensor:
    """Compute the angles between predicted and target normal vectors, in degrees.

    Input tensors should have the same shape.

    Args:
        prediction: Predicted values.
        target: Ground truth values.
        mask: Marks valid values with `1` and invalid ones with `0`.
            Invalid values have 0 loss. Set to `None` to disable masking.
            A mask without the channel dimension is broadcast over it.
    """
    if prediction.shape != target.shape:
        raise ValueError('Input tensors have different shapes.')

    if mask is not None and mask.shape == target.shape[:-1]:
        mask = mask.unsqueeze(-1).expand_as(target)

    if mask is not None and mask.shape != target.shape:
        raise ValueError("Mask shape doesn't match that of the input tensors.")

    if mask is not None:
        prediction = torch.where(mask == 1, prediction, target)

    prediction = normalize(prediction, dim=-1)
    target = normalize(target, dim=-1)

    cosines = torch.clamp(torch.sum(prediction * target, dim=-1), -1.0, 1.0)
    radian_angles = torch.acos(cosines)
    degree_angles = torch.rad2deg(radian_angles)
    return degree_angles


def get_normals_error_visualization(prediction: torch.Tensor, target: torch.Tensor,
                                    validity_mask: torch.Tensor = None) -> plt.Figure:
    """Get a visualization for surface normals prediction error.

    The input tensors must be of shape [Height x Width X Channel].

    Args:
        prediction: Predicted normals
        target: Ground truth normals
        validity_mask: Marks valid values with `1.0` and invalid ones with `0.0`
    """
    error = torch.abs(prediction - target)

    if validity_mask is not None:
        error *= validity_mask

    figure, axis_handles = plt.subplots(3, 1, figsize=[12.0, 12.0])
    axes = ['X', 'Y', 'Z']
    for index, axis in enumerate(axes):
        plt.sca(axis_handles[index])
        plt.gca().set_xticks([])
        plt.gca().set_yticks([])
        plt.title(f'Normal {axis}')
        image = plt.imshow(error[..., index], cmap='Greys', vmin=0)
        plt.colorbar(image)
    return figure


def main(argv=None):
    parser = argparse.ArgumentParser(description="Compare photometric stereo normals with the calibration sphere")
    parser.add_argument("input_parameters")
    parser.add_argument("input_directions")
    parser.add_argument("images", nargs=3)
    parser.add_argument("threshold", type=int)
    parser.add_argument("--figure", help="Save the per axis error visualization to this file")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        images = [load_image(path) for path in args.images]
        parameters = read_parameters(args.input_parameters)
        normals, albedo = surface_normals(read_directions(args.input_directions), images, args.threshold)
    except OSError as error:
        print(error)
        sys.exit(1)

    ground_truth, inside = sphere_ground_truth_normals(parameters, images[0].shape)
    valid = inside & (albedo > 0)
    logger.debug("Evaluating %d pixels", int(valid.sum()))

    summary = angle_error_summary(normals, ground_truth, valid)
    if not summary:
        print("No pixel to evaluate.")
        return
    print('---------------------------------------')
    print('Mean:', summary['mean'])
    print('Median:', summary['median'])
    print('RMSE:', summary['rmse'])
    for threshold in ANGLE_THRESHOLDS:
        print(f'{threshold}:', summary[threshold])
    print('---------------------------------------')

    pred = torch.from_numpy(normals)
    gt = torch.from_numpy(ground_truth)
    mask = torch.from_numpy(valid)
    angle_difference = normals_angle_difference(pred, gt, mask)[mask]
    for threshold in ANGLE_THRESHOLDS:
        print(f'SN angle error < {threshold} deg', float(angle_error_under_threshold(angle_difference, threshold)))

    if args.figure:
        figure = get_normals_error_visualization(pred, gt, mask.unsqueeze(-1).double())
        figure.savefig(args.figure)
        plt.close(figure)


if __name__ == "__main__":
    main()
