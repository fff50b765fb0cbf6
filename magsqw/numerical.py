"""
Batch evaluation of a model over many (h, k, l, E) points and q-paths.

Parallel runs give every worker process its own copy of the model, pickled
once in the pool initializer, so the workers never share mutable state.
"""
import logging
import sys
from dataclasses import dataclass
from multiprocessing import Pool
from typing import Optional, Tuple

import numpy as np
import numpy.typing as npt
from tqdm import tqdm

from .sqwbase import SqwBase

logger = logging.getLogger(__name__)


@dataclass
class DispersionResult:
    """Modes along a list of q-points, padded with NaN to a common width."""
    q_vectors: npt.NDArray[np.float64]
    energies: npt.NDArray[np.float64]
    weights: npt.NDArray[np.float64]


@dataclass
class SqwResult:
    """S(q,E) on a q-path times energy-axis grid, shape (N_q, N_E)."""
    q_vectors: npt.NDArray[np.float64]
    energies: npt.NDArray[np.float64]
    intensities: npt.NDArray[np.float64]


# --- Global variable for worker processes ---
_worker_model: Optional[SqwBase] = None


def _init_worker(model: SqwBase):
    """Initializer for multiprocessing workers, keeps one model per process."""
    global _worker_model
    try:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
        _worker_model = model
    except Exception as e:
        sys.stderr.write(f"Error in worker initialization: {e}\n")
        raise e


def _evaluate_row(point: Tuple[float, float, float, float]) -> float:
    h, k, l, E = point
    return float(_worker_model.evaluate(h, k, l, E))


def _evaluate_row_on_axis(args: Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]):
    q_vec, E_axis = args
    return np.asarray(_worker_model.evaluate(q_vec[0], q_vec[1], q_vec[2], E_axis), dtype=float)


def _as_points(points) -> npt.NDArray[np.float64]:
    arr = np.asarray(points, dtype=float)
    if arr.ndim == 1 and arr.size == 4:
        arr = arr.reshape(1, 4)
    if arr.ndim != 2 or arr.shape[1] != 4:
        raise ValueError(f"Points must have shape (N, 4) for (h, k, l, E), got {arr.shape}.")
    return arr


def evaluate_points(
    model: SqwBase,
    points,
    processes: Optional[int] = None,
    progress: bool = False,
) -> npt.NDArray[np.float64]:
    """
    Evaluates S(q,E) at a list of (h, k, l, E) points.

    Args:
        model (SqwBase): The model to evaluate. It is not modified.
        points: Array-like of shape (N, 4).
        processes (Optional[int]): Number of worker processes. None or 1
            evaluates serially in this process.
        progress (bool): Show a tqdm progress bar.

    Returns:
        npt.NDArray[np.float64]: S(q,E) for every point, shape (N,).
    """
    arr = _as_points(points)
    if len(arr) == 0:
        return np.zeros(0)

    if processes is None or processes <= 1:
        rows = tqdm(arr, desc="Evaluating S(q,E)", disable=not progress)
        return np.array([float(model.evaluate(h, k, l, E)) for h, k, l, E in rows])

    logger.info(f"Evaluating {len(arr)} points with {processes} processes...")
    pool_args = [tuple(row) for row in arr]
    chunksize = max(1, len(pool_args) // (4 * processes))
    with Pool(processes=processes, initializer=_init_worker, initargs=(model.clone(),)) as pool:
        results = list(
            tqdm(
                pool.imap(_evaluate_row, pool_args, chunksize=chunksize),
                total=len(pool_args),
                desc="Evaluating S(q,E)",
                bar_format="{percentage:3.0f}%|{bar}| {elapsed}<{remaining}",
                disable=not progress,
            )
        )
    return np.array(results, dtype=float)


def calc_dispersion(model: SqwBase, q_vectors) -> DispersionResult:
    """
    Modes of the model at each q-point (rows of h, k, l).

    q-points without modes are left as NaN.
    """
    q_arr = np.atleast_2d(np.asarray(q_vectors, dtype=float))
    all_modes = [model.dispersion(q[0], q[1], q[2]) for q in q_arr]

    nmodes = max((len(modes) for modes in all_modes), default=0)
    energies = np.full((len(q_arr), nmodes), np.nan)
    weights = np.full((len(q_arr), nmodes), np.nan)
    for i, modes in enumerate(all_modes):
        for j, (energy, weight) in enumerate(modes):
            energies[i, j] = energy
            weights[i, j] = weight

    num_failures = sum(1 for modes in all_modes if not modes)
    if num_failures:
        logger.warning(f"No modes at {num_failures} of {len(q_arr)} q-points.")
    return DispersionResult(q_vectors=q_arr, energies=energies, weights=weights)


def calc_sqw_map(
    model: SqwBase,
    q_vectors,
    E_axis,
    processes: Optional[int] = None,
    progress: bool = False,
) -> SqwResult:
    """S(q,E) on the grid of q-points times the energy axis."""
    q_arr = np.atleast_2d(np.asarray(q_vectors, dtype=float))
    E_arr = np.asarray(E_axis, dtype=float)

    if processes is None or processes <= 1:
        rows = [
            np.asarray(model.evaluate(q[0], q[1], q[2], E_arr), dtype=float)
            for q in tqdm(q_arr, desc="Calculating S(q,E) map", disable=not progress)
        ]
    else:
        pool_args = [(q, E_arr) for q in q_arr]
        with Pool(processes=processes, initializer=_init_worker, initargs=(model.clone(),)) as pool:
            rows = list(
                tqdm(
                    pool.imap(_evaluate_row_on_axis, pool_args),
                    total=len(pool_args),
                    desc="Calculating S(q,E) map",
                    disable=not progress,
                )
            )

    intensities = np.array(rows, dtype=float).reshape(len(q_arr), len(E_arr))
    return SqwResult(q_vectors=q_arr, energies=E_arr, intensities=intensities)
