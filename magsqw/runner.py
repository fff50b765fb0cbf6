import logging
import os
from typing import Optional

import numpy as np

from .config_loader import load_model_config
from .core import MagnonModel
from .numerical import calc_dispersion, calc_sqw_map
from .plotting import plot_dispersion, plot_sqw_map
from .schema import MagnonModelConfig

logger = logging.getLogger(__name__)


def generate_q_path_from_config(config: MagnonModelConfig) -> np.ndarray:
    """
    Generates the q-path (rlu) from the `q_path` section.

    Each segment between consecutive labels has `points_per_segment` points;
    the shared end points are not repeated.
    """
    q_conf = config.q_path
    if q_conf is None:
        return np.zeros((0, 3))

    points = {k: np.array(v, dtype=float) for k, v in (q_conf.model_extra or {}).items()}
    path_labels = q_conf.path
    n_points = q_conf.points_per_segment

    q_vectors = []
    if len(path_labels) == 1:
        pt = points.get(path_labels[0])
        if pt is None:
            logger.error(f"Undefined point in path: {path_labels[0]}")
        else:
            q_vectors.append(pt)

    for i in range(len(path_labels) - 1):
        start_label, end_label = path_labels[i], path_labels[i + 1]
        start_pt, end_pt = points.get(start_label), points.get(end_label)
        if start_pt is None or end_pt is None:
            logger.error(f"Undefined point in path: {start_label} -> {end_label}")
            continue

        segment = np.linspace(start_pt, end_pt, n_points)
        if q_vectors:
            segment = segment[1:]
        q_vectors.extend(segment)

    return np.array(q_vectors).reshape(-1, 3)


def _output_path(config_dir: str, filename: str) -> str:
    if os.path.isabs(filename):
        return filename
    return os.path.join(config_dir, filename)


def run_scan(config_file: str, processes: Optional[int] = None) -> str:
    """
    Calculates the dispersion and an S(q,E) map along the configured q-path.

    The results are saved as an .npz file next to the configuration (keys
    q_vectors, energies, weights, E_axis, intensities) and plotted according
    to the `plotting` section.

    Returns:
        str: Path of the saved data file.

    Raises:
        FileNotFoundError, ValueError: If the configuration cannot be used.
    """
    if not os.path.exists(config_file):
        logger.error(f"Config file '{config_file}' not found.")
        raise FileNotFoundError(f"Config file '{config_file}' not found.")

    config = load_model_config(config_file)
    if config.q_path is None:
        raise ValueError(f"No 'q_path' section in {config_file}, nothing to scan.")

    model = MagnonModel(config_file)
    if not model.is_ok():
        raise ValueError(f"Magnon model from {config_file} could not be set up.")

    q_vectors = generate_q_path_from_config(config)
    if len(q_vectors) == 0:
        raise ValueError("The q-path is empty.")
    logger.info(f"Scanning {len(q_vectors)} q-points...")

    config_dir = os.path.dirname(os.path.abspath(config_file))
    q_conf = config.q_path

    disp_res = calc_dispersion(model, q_vectors)
    E_axis = np.arange(q_conf.E_min, q_conf.E_max + 0.5 * q_conf.E_step, q_conf.E_step)
    sqw_res = calc_sqw_map(model, q_vectors, E_axis, processes=processes, progress=True)

    data_file = _output_path(config_dir, config.output.scan_data_filename)
    os.makedirs(os.path.dirname(data_file), exist_ok=True)
    np.savez(
        data_file,
        q_vectors=q_vectors,
        energies=disp_res.energies,
        weights=disp_res.weights,
        E_axis=sqw_res.energies,
        intensities=sqw_res.intensities,
    )
    logger.info(f"Scan data saved to {data_file}")

    plot_conf = config.plotting
    if plot_conf.save_plot or plot_conf.show_plot:
        disp_file = _output_path(config_dir, plot_conf.disp_plot_filename) if plot_conf.save_plot else None
        sqw_file = _output_path(config_dir, plot_conf.sqw_plot_filename) if plot_conf.save_plot else None
        plot_dispersion(
            q_vectors, disp_res.energies, disp_file,
            weights=disp_res.weights,
            title=plot_conf.disp_title,
            ylim=plot_conf.energy_limits_disp,
            show_plot=plot_conf.show_plot,
        )
        plot_sqw_map(
            q_vectors, sqw_res.energies, sqw_res.intensities, sqw_file,
            title=plot_conf.sqw_title,
            cmap=plot_conf.cmap,
            show_plot=plot_conf.show_plot,
        )

    model.destroy()
    return data_file
