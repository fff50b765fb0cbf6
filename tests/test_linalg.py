# test_linalg.py
import logging

import numpy as np
import pytest
from numpy.testing import assert_allclose

from magsqw.linalg import (
    diagonalize_bosonic,
    float_equal,
    lattice_vectors,
    reciprocal_basis,
    rotation_to,
    skew,
)


# --- Tests for float_equal ---
def test_float_equal():
    assert float_equal(0.0, 1e-12)
    assert float_equal(1.0, 1.0)
    assert not float_equal(0.0, 1e-6)


# --- Tests for skew ---
def test_skew_matches_cross_product():
    D = np.array([0.3, -1.2, 0.7])
    Si = np.array([1.0, 0.5, -0.2])
    Sj = np.array([-0.4, 0.9, 1.1])
    M = skew(D)
    assert_allclose(Si @ M @ Sj, np.dot(D, np.cross(Si, Sj)))
    assert_allclose(M, -M.T)


# --- Tests for rotation_to ---
@pytest.mark.parametrize(
    "direction",
    [[0, 0, 1], [0, 0, -1], [1, 0, 0], [0, 2, 0], [1, 1, 1], [0.3, -0.4, -2.0]],
)
def test_rotation_to_maps_z_onto_direction(direction):
    R = rotation_to(direction)
    n = np.asarray(direction, dtype=float) / np.linalg.norm(direction)
    assert_allclose(R @ np.array([0.0, 0.0, 1.0]), n, atol=1e-12)
    assert_allclose(R.T @ R, np.eye(3), atol=1e-12)
    assert np.linalg.det(R) == pytest.approx(1.0)


def test_rotation_to_zero_vector_raises():
    with pytest.raises(ValueError):
        rotation_to([0.0, 0.0, 0.0])


# --- Tests for lattice and reciprocal basis ---
def test_reciprocal_basis_cubic():
    assert_allclose(reciprocal_basis(2.0, 2.0, 2.0, 90, 90, 90), np.pi * np.eye(3), atol=1e-12)


def test_reciprocal_basis_hexagonal_duality():
    A = lattice_vectors(5.0, 5.0, 12.0, 90, 90, 120)
    B = reciprocal_basis(5.0, 5.0, 12.0, 90, 90, 120)
    assert_allclose(A @ B.T, 2 * np.pi * np.eye(3), atol=1e-12)


def test_lattice_vectors_invalid_angles():
    with pytest.raises(ValueError):
        lattice_vectors(1.0, 1.0, 1.0, 170, 10, 90)


# --- Tests for diagonalize_bosonic ---
def test_diagonalize_bosonic_diagonal():
    H = np.diag([2.0, 3.0, 2.0, 3.0]).astype(np.complex128)
    energies, T = diagonalize_bosonic(H, 2, "test")
    assert_allclose(energies, [3.0, 2.0, -2.0, -3.0])
    assert_allclose(T.conj().T @ H @ T, np.diag(np.abs(energies)), atol=1e-12)


def test_diagonalize_bosonic_single_spin_with_anomalous_term():
    A, B = 2.0, 1.0
    H = np.array([[A, B], [B, A]], dtype=np.complex128)
    energies, T = diagonalize_bosonic(H, 1, "test")
    omega = np.sqrt(A**2 - B**2)
    assert_allclose(energies, [omega, -omega])

    g = np.diag([1.0, -1.0])
    assert_allclose(T.conj().T @ g @ T, g, atol=1e-12)
    assert_allclose(T.conj().T @ H @ T, omega * np.eye(2), atol=1e-12)


def test_diagonalize_bosonic_goldstone_mode_uses_shift():
    H = np.zeros((2, 2), dtype=np.complex128)
    energies, T = diagonalize_bosonic(H, 1, "test")
    assert energies is not None
    assert_allclose(energies, [0.0, 0.0], atol=1e-4)


def test_diagonalize_bosonic_unstable(caplog):
    H = -np.eye(2, dtype=np.complex128)
    with caplog.at_level(logging.WARNING):
        energies, T = diagonalize_bosonic(H, 1, "Q=(0, 0, 0)")
    assert energies is None and T is None
    assert "Cholesky decomposition failed" in caplog.text


def test_diagonalize_bosonic_shape_mismatch():
    with pytest.raises(ValueError):
        diagonalize_bosonic(np.eye(3, dtype=np.complex128), 2, "test")
