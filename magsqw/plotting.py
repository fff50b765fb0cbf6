import logging
import os
from typing import List, Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import LogNorm

logger = logging.getLogger(__name__)


def path_length(q_vectors: np.ndarray) -> np.ndarray:
    """Cumulative distance along a q-path, starting at 0."""
    q_vectors = np.asarray(q_vectors, dtype=float)
    if len(q_vectors) == 0:
        return np.zeros(0)
    dists = np.linalg.norm(np.diff(q_vectors, axis=0), axis=1)
    return np.concatenate(([0.0], np.cumsum(dists)))


def _save_or_show(save_filename: Optional[str], show_plot: bool, what: str):
    if save_filename:
        os.makedirs(os.path.dirname(os.path.abspath(save_filename)), exist_ok=True)
        plt.savefig(save_filename, dpi=150)
        logger.info(f"{what} plot saved to {save_filename}")
    if show_plot:
        plt.show()
    plt.close()


def plot_dispersion(
    q_vectors: np.ndarray,
    energies: np.ndarray,
    save_filename: Optional[str],
    weights: Optional[np.ndarray] = None,
    title: str = "Magnon Dispersion",
    ylim: Optional[List[float]] = None,
    show_plot: bool = False,
):
    """
    Plots the magnon branches along a q-path.

    `energies` has shape (N_q, N_modes), NaN where a mode is missing. If
    `weights` is given, the marker size follows the spectral weight.
    """
    try:
        x_vals = path_length(q_vectors)
        energies = np.asarray(energies, dtype=float)

        plt.figure(figsize=(8, 6))
        if weights is None:
            for mode_idx in range(energies.shape[1]):
                plt.plot(x_vals, energies[:, mode_idx], 'b-', alpha=0.8)
        else:
            weights = np.nan_to_num(np.asarray(weights, dtype=float))
            w_max = weights.max() if weights.size and weights.max() > 0 else 1.0
            for mode_idx in range(energies.shape[1]):
                plt.plot(x_vals, energies[:, mode_idx], 'b-', alpha=0.3, lw=0.8)
                plt.scatter(
                    x_vals, energies[:, mode_idx],
                    s=2 + 40 * weights[:, mode_idx] / w_max, c='b', alpha=0.6,
                )

        plt.title(title)
        plt.xlabel("Q Path Length (rlu)")
        plt.ylabel("Energy (meV)")
        if ylim:
            plt.ylim(ylim)
        plt.grid(True, alpha=0.3)
        if len(x_vals) > 1:
            plt.xlim(x_vals[0], x_vals[-1])

        _save_or_show(save_filename, show_plot, "Dispersion")

    except Exception as e:
        logger.error(f"Failed to plot dispersion: {e}")
        raise e


def plot_sqw_map(
    q_vectors: np.ndarray,
    E_axis: np.ndarray,
    intensities: np.ndarray,
    save_filename: Optional[str],
    title: str = "S(Q,E)",
    cmap: str = 'PuBu_r',
    log_scale: bool = True,
    show_plot: bool = False,
):
    """
    Plots an S(q,E) map of shape (N_q, N_E) along a q-path.
    """
    try:
        x_vals = path_length(q_vectors)
        E_axis = np.asarray(E_axis, dtype=float)
        intensity_matrix = np.asarray(intensities, dtype=float).T

        plt.figure(figsize=(10, 6))

        norm = None
        if log_scale:
            pos_vals = intensity_matrix[intensity_matrix > 1e-6]
            if len(pos_vals) > 0:
                vmin, vmax = np.min(pos_vals), np.max(pos_vals)
            else:
                vmin, vmax = 1e-3, 1.0
            norm = LogNorm(vmin=vmin, vmax=vmax)
            intensity_matrix = np.clip(intensity_matrix, vmin, None)

        pcm = plt.pcolormesh(x_vals, E_axis, intensity_matrix, norm=norm, cmap=cmap, shading='nearest')
        plt.colorbar(pcm, label="Intensity (arb. units)")
        plt.title(title)
        plt.xlabel("Q Path Length (rlu)")
        plt.ylabel("Energy (meV)")
        plt.ylim(E_axis[0], E_axis[-1])
        plt.tight_layout()

        _save_or_show(save_filename, show_plot, "S(Q,E)")

    except Exception as e:
        logger.error(f"Failed to plot S(Q,E): {e}")
        raise e
