#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Peak shapes and thermal population factors for S(q,E) synthesis.

All functions accept scalars or NumPy arrays for the energy argument and
follow NumPy broadcasting rules. Energies are in meV, temperatures in K.
"""
import logging
from typing import Union

import numpy as np
import numpy.typing as npt
from scipy import constants

logger = logging.getLogger(__name__)

# Boltzmann constant in meV/K
KB_MEV: float = constants.physical_constants["Boltzmann constant in eV/K"][0] * 1e3

# Default half-width of the energy band around E = 0 where the
# population factor is not applied
DEFAULT_BOSE_CUTOFF: float = 0.02

ArrayOrFloat = Union[float, npt.NDArray[np.float64]]


def gauss_model(
    x: ArrayOrFloat,
    x0: float,
    sigma: float,
    amp: float,
    offs: float = 0.0,
) -> ArrayOrFloat:
    """
    Area-normalised Gaussian peak.

    Args:
        x: Position(s) at which to evaluate the peak.
        x0: Peak centre.
        sigma: Standard deviation, must be positive.
        amp: Integrated area of the peak.
        offs: Constant baseline added to the peak.

    Returns:
        amp / (sigma * sqrt(2 pi)) * exp(-(x - x0)^2 / (2 sigma^2)) + offs

    Raises:
        ValueError: If sigma is not positive.
    """
    if not sigma > 0.0:
        raise ValueError(f"Peak width must be positive, got sigma={sigma}.")

    norm = amp / (sigma * np.sqrt(2.0 * np.pi))
    return norm * np.exp(-0.5 * ((x - x0) / sigma) ** 2) + offs


def bose(E: ArrayOrFloat, T: float) -> ArrayOrFloat:
    """
    Bose population factor for energy loss (E >= 0) and energy gain (E < 0).

    Returns n(|E|) + 1 for E >= 0 and n(|E|) for E < 0, where
    n(x) = 1 / (exp(x / kT) - 1).

    Raises:
        ValueError: If T is not positive.
    """
    if not T > 0.0:
        raise ValueError(f"Temperature must be positive, got T={T}.")

    E_arr = np.asarray(E, dtype=float)
    with np.errstate(divide="ignore", over="ignore"):
        n = 1.0 / np.expm1(np.abs(E_arr) / (KB_MEV * T))
    factor = np.where(E_arr >= 0.0, n + 1.0, n)

    if np.ndim(factor) == 0:
        return float(factor)
    return factor


def bose_cutoff(
    E: ArrayOrFloat, T: float, cutoff: float = DEFAULT_BOSE_CUTOFF
) -> ArrayOrFloat:
    """
    Bose factor with an unweighted band |E| < |cutoff| around the elastic line.

    Inside the band, and at E = 0 for a zero cutoff, the factor is 1.
    Outside it is `bose(E, T)`.

    Raises:
        ValueError: If T is not positive.
    """
    if not T > 0.0:
        raise ValueError(f"Temperature must be positive, got T={T}.")

    cutoff = abs(cutoff)
    E_arr = np.asarray(E, dtype=float)
    # E = 0 is the pole of the thermal factor and always counts as inside
    inside = (np.abs(E_arr) < cutoff) | (E_arr == 0.0)

    # keep the thermal factor away from its pole at E = 0
    E_safe = np.where(inside, cutoff if cutoff > 0.0 else 1.0, E_arr)
    factor = np.where(inside, 1.0, bose(E_safe, T))

    if np.ndim(factor) == 0:
        return float(factor)
    return factor
