import logging
from typing import Tuple, Optional

import numpy as np
import numpy.typing as npt
from scipy import linalg as la

logger = logging.getLogger(__name__)

# --- Numerical Constants ---
FLOAT_EPSILON: float = 1e-9
# Diagonal shift used when the bosonic Hamiltonian is only semi-definite
GOLDSTONE_SHIFT: float = 1e-5
ENERGY_IMAG_PART_THRESHOLD: float = 1e-5
Q_ZERO_THRESHOLD: float = 1e-10


def float_equal(a: float, b: float, eps: float = FLOAT_EPSILON) -> bool:
    """Compare two scalars with an absolute tolerance."""
    return abs(a - b) <= eps


def skew(vec: npt.ArrayLike) -> npt.NDArray[np.complex128]:
    """
    Antisymmetric matrix M with S_i^T M S_j == vec . (S_i x S_j).

    Used to fold a Dzyaloshinskii-Moriya vector into a 3x3 coupling matrix.
    """
    x, y, z = np.asarray(vec, dtype=np.complex128)
    return np.array(
        [[0.0, z, -y], [-z, 0.0, x], [y, -x, 0.0]], dtype=np.complex128
    )


def rotation_to(direction: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """
    Rotation matrix that maps the z axis onto `direction`.

    Args:
        direction: Target direction, need not be normalised.

    Returns:
        3x3 orthogonal matrix R with R @ [0, 0, 1] == direction / |direction|.

    Raises:
        ValueError: If `direction` has zero length.
    """
    n = np.asarray(direction, dtype=float)
    norm = np.linalg.norm(n)
    if norm < FLOAT_EPSILON:
        raise ValueError("Cannot build a rotation onto a zero-length vector.")
    n = n / norm

    z = np.array([0.0, 0.0, 1.0])
    cos_angle = float(np.dot(z, n))
    if cos_angle > 1.0 - FLOAT_EPSILON:
        return np.eye(3)
    if cos_angle < -1.0 + FLOAT_EPSILON:
        # half turn about x
        return np.diag([1.0, -1.0, -1.0])

    axis = np.cross(z, n)
    sin_angle = np.linalg.norm(axis)
    axis = axis / sin_angle
    K = np.array(
        [[0.0, -axis[2], axis[1]], [axis[2], 0.0, -axis[0]], [-axis[1], axis[0], 0.0]]
    )
    return np.eye(3) + sin_angle * K + (1.0 - cos_angle) * (K @ K)


def lattice_vectors(
    a: float, b: float, c: float, alpha: float, beta: float, gamma: float
) -> npt.NDArray[np.float64]:
    """
    Real-space lattice vectors (rows) from lattice constants and angles in degrees.
    """
    al, be, ga = np.radians([alpha, beta, gamma])
    a1 = np.array([a, 0.0, 0.0])
    a2 = np.array([b * np.cos(ga), b * np.sin(ga), 0.0])
    cx = c * np.cos(be)
    cy = c * (np.cos(al) - np.cos(be) * np.cos(ga)) / np.sin(ga)
    cz_sq = c**2 - cx**2 - cy**2
    if cz_sq <= 0.0:
        raise ValueError(
            f"Lattice angles ({alpha}, {beta}, {gamma}) do not describe a valid cell."
        )
    a3 = np.array([cx, cy, np.sqrt(cz_sq)])
    return np.vstack((a1, a2, a3))


def reciprocal_basis(
    a: float, b: float, c: float, alpha: float, beta: float, gamma: float
) -> npt.NDArray[np.float64]:
    """
    Reciprocal lattice vectors (rows, including the factor 2 pi).

    A momentum transfer in rlu converts to 1/A via `Q_rlu @ B`.
    """
    A = lattice_vectors(a, b, c, alpha, beta, gamma)
    return 2.0 * np.pi * np.linalg.inv(A).T


def _cholesky_with_shift(
    Hmat: npt.NDArray[np.complex128], q_vector_label: str
) -> Optional[npt.NDArray[np.complex128]]:
    """
    Upper Cholesky factor K with Hmat = K^H K.

    Retries once with a small diagonal shift if Hmat is only positive
    semi-definite (e.g. at a Goldstone mode). Returns None on failure.
    """
    try:
        return la.cholesky(Hmat, lower=False)
    except la.LinAlgError:
        logger.debug(
            f"Hamiltonian not positive definite for {q_vector_label}, retrying with shift."
        )

    shifted = Hmat + GOLDSTONE_SHIFT * np.eye(Hmat.shape[0])
    try:
        return la.cholesky(shifted, lower=False)
    except la.LinAlgError:
        logger.warning(
            f"Cholesky decomposition failed for {q_vector_label}; "
            "the classical ground state is probably unstable."
        )
        return None


def diagonalize_bosonic(
    Hmat: npt.NDArray[np.complex128], nspins: int, q_vector_label: str
) -> Tuple[Optional[npt.NDArray[np.float64]], Optional[npt.NDArray[np.complex128]]]:
    """
    Colpa diagonalisation of a 2N x 2N bosonic Hamiltonian.

    Finds T with T^H Hmat T = diag(|E|) and T^H g T = g, where
    g = diag(1, ..., 1, -1, ..., -1).

    Args:
        Hmat (npt.NDArray[np.complex128]): Hermitian Hamiltonian in the
            (a_k, a^dagger_-k) basis.
        nspins (int): Number of spins N in the magnetic unit cell.
        q_vector_label (str): Label of the momentum (for logging).

    Returns:
        Tuple of
        - energies (2N,): N positive magnon energies in descending order,
          followed by the N energy-gain branches (negative).
        - T (2N x 2N): the paraunitary transformation, columns per mode.
        Returns (None, None) if the diagonalisation fails.
    """
    nspins2 = 2 * nspins
    if Hmat.shape != (nspins2, nspins2):
        raise ValueError(
            f"Hamiltonian shape {Hmat.shape} does not match {nspins} spins."
        )

    herm_dev = np.max(np.abs(Hmat - Hmat.conj().T)) if Hmat.size else 0.0
    if herm_dev > ENERGY_IMAG_PART_THRESHOLD:
        logger.warning(
            f"Hamiltonian is not Hermitian for {q_vector_label} (deviation {herm_dev})."
        )
    Hmat = 0.5 * (Hmat + Hmat.conj().T)

    K = _cholesky_with_shift(Hmat, q_vector_label)
    if K is None:
        return None, None

    g_metric = np.concatenate([np.ones(nspins), -np.ones(nspins)])
    KgK = K @ (g_metric[:, np.newaxis] * K.conj().T)
    try:
        eigvals, eigvecs = la.eigh(KgK)
    except la.LinAlgError as e:
        logger.error(f"Eigenvalue calculation failed for {q_vector_label}: {e}")
        return None, None

    sort_indices = np.argsort(-eigvals)
    eigvals = eigvals[sort_indices]
    eigvecs = eigvecs[:, sort_indices]

    # the first N eigenvalues must be positive, the last N negative
    if np.any(eigvals[:nspins] < 0.0) or np.any(eigvals[nspins:] > 0.0):
        logger.warning(
            f"Unexpected eigenvalue signature for {q_vector_label}: {eigvals}."
        )

    abs_energies = np.abs(eigvals)
    try:
        T = la.solve_triangular(K, eigvecs, lower=False) * np.sqrt(abs_energies)
    except la.LinAlgError as e:
        logger.error(f"Back-substitution failed for {q_vector_label}: {e}")
        return None, None

    return eigvals, T
