#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Linear spin-wave dynamics engine.

`MagDyn` holds a magnetic structure (atom sites, exchange terms, external
field, model variables) and returns the magnon modes, i.e. the energies and
neutron scattering weights, at a given momentum transfer (h, k, l) in rlu.

The Hamiltonian is

    H = sum_bonds S_i^T J_ij S_j  -  g mu_B sum_i B . S_i

with J_ij = J * 1 + [DMI]_x + J_gen. Each bond is listed once. Spin waves
are obtained with the Holstein-Primakoff expansion in the local frame of
each spin and the Colpa diagonalisation of the resulting bosonic
Hamiltonian (Toth & Lake, J. Phys.: Condens. Matter 27, 166002 (2015)).
"""
import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import numpy.typing as npt
import sympy as sp
from scipy import constants

from . import symbolic
from .config_loader import load_model_config
from .linalg import (
    diagonalize_bosonic,
    reciprocal_basis,
    rotation_to,
    skew,
    ENERGY_IMAG_PART_THRESHOLD,
    Q_ZERO_THRESHOLD,
)
from .lineshape import DEFAULT_BOSE_CUTOFF
from .schema import MagnonModelConfig

logger = logging.getLogger(__name__)

# Bohr magneton in meV/T
MU_B_MEV: float = constants.physical_constants["Bohr magneton in eV/T"][0] * 1e3

DEFAULT_TEMPERATURE: float = 300.0
DEFAULT_G_FACTOR: float = 2.0

AtomRef = Union[int, str]


@dataclass
class Variable:
    """A named model variable, e.g. an exchange constant."""
    name: str
    value: complex = 0j


@dataclass
class ExternalField:
    """Magnetic field direction (not necessarily normalised) and magnitude in T."""
    dir: npt.NDArray[np.float64] = field(
        default_factory=lambda: np.array([0.0, 0.0, 1.0])
    )
    mag: float = 0.0
    align_spins: bool = False

    def vector(self) -> npt.NDArray[np.float64]:
        norm = np.linalg.norm(self.dir)
        if norm < 1e-12:
            return np.zeros(3)
        return self.mag * np.asarray(self.dir, dtype=float) / norm


@dataclass
class AtomSite:
    name: str
    pos: npt.NDArray[np.float64]
    spin_dir: List[sp.Expr]
    spin_mag: sp.Expr

    # calculated by calc_atom_sites
    spin_dir_calc: npt.NDArray[np.float64] = field(
        default_factory=lambda: np.array([0.0, 0.0, 1.0])
    )
    spin_mag_calc: float = 0.0
    # calculated by calc_spin_rotation
    u: npt.NDArray[np.complex128] = field(
        default_factory=lambda: np.array([1.0, 1.0j, 0.0])
    )
    v: npt.NDArray[np.float64] = field(
        default_factory=lambda: np.array([0.0, 0.0, 1.0])
    )


@dataclass
class ExchangeTerm:
    name: str
    atom1: int
    atom2: int
    dist: npt.NDArray[np.float64]
    J: sp.Expr
    dmi: Optional[List[sp.Expr]] = None
    J_gen: Optional[List[List[sp.Expr]]] = None

    # calculated by calc_exchange_terms
    J_calc: npt.NDArray[np.complex128] = field(
        default_factory=lambda: np.zeros((3, 3), dtype=np.complex128)
    )


@dataclass
class EnergyAndWeight:
    """One magnon mode. Negative energies are the energy-gain branch."""
    E: float
    weight: float
    # full correlation tensors, only filled in when requested
    S: Optional[npt.NDArray[np.complex128]] = None
    S_perp: Optional[npt.NDArray[np.complex128]] = None


class MagDyn:
    """
    Magnon dynamics of a commensurate magnetic structure.

    Attributes:
        atoms (List[AtomSite]): Magnetic sites of the unit cell.
        exchange_terms (List[ExchangeTerm]): Couplings between the sites.
        config (Optional[MagnonModelConfig]): The last loaded configuration.
        g_factor (float): Isotropic g factor used for the Zeeman term.
    """

    def __init__(self):
        self.atoms: List[AtomSite] = []
        self.exchange_terms: List[ExchangeTerm] = []
        self.config: Optional[MagnonModelConfig] = None
        self.g_factor: float = DEFAULT_G_FACTOR

        self._variables: Dict[str, complex] = {}
        self._field = ExternalField()
        self._bragg: Optional[npt.NDArray[np.float64]] = None
        self._temperature: float = DEFAULT_TEMPERATURE
        self._bose_cutoff: float = DEFAULT_BOSE_CUTOFF
        self._recip: npt.NDArray[np.float64] = reciprocal_basis(1.0, 1.0, 1.0, 90.0, 90.0, 90.0)

    # ------------------------------------------------------------------
    # loading and setup
    # ------------------------------------------------------------------
    def load(self, filepath: str) -> bool:
        """
        Load a model configuration file.

        Returns:
            bool: True on success. On failure the error is logged and the
            engine is left empty.
        """
        try:
            config = load_model_config(filepath)
            self.load_config(config)
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to load magnon model from '{filepath}': {e}")
            self.clear()
            return False
        return True

    def load_config(self, config: MagnonModelConfig):
        """
        Set up the engine from a validated configuration.

        Raises:
            ValueError: If an expression cannot be parsed.
            KeyError: If an expression references an undefined variable.
        """
        self.clear()
        self.config = config

        lat = config.lattice
        self.set_lattice(lat.a, lat.b, lat.c, lat.alpha, lat.beta, lat.gamma)
        self._temperature = float(config.temperature)
        self._bose_cutoff = float(config.bose_cutoff)

        for name, value in config.variables.items():
            self._variables[name] = _parse_complex(value)

        for atom in config.atoms:
            self.add_atom_site(atom.name, atom.pos, atom.spin_dir, atom.spin_mag)

        for term in config.exchange_terms:
            self.add_exchange_term(
                term.name, term.atoms[0], term.atoms[1], term.dist,
                term.J, term.dmi, term.J_gen,
            )

        self._field = ExternalField(
            dir=np.array(config.field.dir, dtype=float),
            mag=float(config.field.mag),
            align_spins=bool(config.field.align_spins),
        )
        if config.bragg is not None:
            self.set_bragg_peak(*config.bragg)

        self._check_expressions()
        self.calc_atom_sites()
        self.calc_spin_rotation()
        self.calc_exchange_terms()

    def set_lattice(
        self, a: float, b: float, c: float,
        alpha: float = 90.0, beta: float = 90.0, gamma: float = 90.0,
    ):
        self._recip = reciprocal_basis(a, b, c, alpha, beta, gamma)

    def add_atom_site(
        self,
        name: str,
        pos: Sequence[float] = (0.0, 0.0, 0.0),
        spin_dir: Sequence[symbolic.ExprLike] = (0.0, 0.0, 1.0),
        spin_mag: symbolic.ExprLike = 1.0,
    ) -> int:
        """Adds a magnetic site and returns its index. Call calc_* afterwards."""
        site = AtomSite(
            name=name,
            pos=np.array(pos, dtype=float),
            spin_dir=symbolic.to_expr_vector(spin_dir),
            spin_mag=symbolic.to_expr(spin_mag),
        )
        self.atoms.append(site)
        return len(self.atoms) - 1

    def add_exchange_term(
        self,
        name: str,
        atom1: AtomRef,
        atom2: AtomRef,
        dist: Sequence[float] = (0.0, 0.0, 0.0),
        J: symbolic.ExprLike = 0.0,
        dmi: Optional[Sequence[symbolic.ExprLike]] = None,
        J_gen: Optional[Sequence[Sequence[symbolic.ExprLike]]] = None,
    ) -> int:
        """Adds a coupling between two sites and returns its index."""
        term = ExchangeTerm(
            name=name,
            atom1=self._atom_index(atom1),
            atom2=self._atom_index(atom2),
            dist=np.array(dist, dtype=float),
            J=symbolic.to_expr(J),
            dmi=symbolic.to_expr_vector(dmi) if dmi is not None else None,
            J_gen=[symbolic.to_expr_vector(row) for row in J_gen] if J_gen is not None else None,
        )
        self.exchange_terms.append(term)
        return len(self.exchange_terms) - 1

    def _atom_index(self, ref: AtomRef) -> int:
        if isinstance(ref, (int, np.integer)):
            if not 0 <= ref < len(self.atoms):
                raise ValueError(f"Atom index {ref} out of range.")
            return int(ref)
        for idx, site in enumerate(self.atoms):
            if site.name == ref:
                return idx
        raise ValueError(f"Unknown atom '{ref}'.")

    def _expressions(self):
        for site in self.atoms:
            yield from site.spin_dir
            yield site.spin_mag
        for term in self.exchange_terms:
            yield term.J
            if term.dmi is not None:
                yield from term.dmi
            if term.J_gen is not None:
                for row in term.J_gen:
                    yield from row

    def _check_expressions(self):
        undefined = set()
        for expr in self._expressions():
            undefined.update(n for n in symbolic.free_names(expr) if n not in self._variables)
        if undefined:
            raise KeyError(f"Undefined variable(s) in model: {sorted(undefined)}")

    def clear(self):
        """Releases all model data and resets the settings to their defaults."""
        self.atoms = []
        self.exchange_terms = []
        self.config = None
        self._variables = {}
        self._field = ExternalField()
        self._bragg = None
        self._temperature = DEFAULT_TEMPERATURE
        self._bose_cutoff = DEFAULT_BOSE_CUTOFF

    def copy(self) -> "MagDyn":
        """Independent deep copy of the engine state."""
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # getters and setters
    # ------------------------------------------------------------------
    def get_temperature(self) -> float:
        return self._temperature

    def set_temperature(self, T: float):
        self._temperature = float(T)

    def get_bose_cutoff_energy(self) -> float:
        return self._bose_cutoff

    def set_bose_cutoff_energy(self, E: float):
        self._bose_cutoff = abs(float(E))

    def get_bragg_peak(self) -> npt.NDArray[np.float64]:
        """The Bragg reference in rlu, an empty array if none is set."""
        if self._bragg is None:
            return np.zeros(0)
        return self._bragg.copy()

    def set_bragg_peak(self, h: float, k: float, l: float):
        self._bragg = np.array([h, k, l], dtype=float)

    def get_external_field(self) -> ExternalField:
        return copy.deepcopy(self._field)

    def set_external_field(self, ext_field: ExternalField):
        self._field = ExternalField(
            dir=np.array(ext_field.dir, dtype=float),
            mag=float(ext_field.mag),
            align_spins=bool(ext_field.align_spins),
        )

    def get_variables(self) -> List[Variable]:
        return [Variable(name, value) for name, value in self._variables.items()]

    def set_variable(self, var: Variable):
        """Sets or adds a variable. Call calc_* afterwards."""
        self._variables[var.name] = complex(var.value)

    # ------------------------------------------------------------------
    # derived quantities
    # ------------------------------------------------------------------
    def _eval_real(self, expr: sp.Expr, what: str) -> float:
        value = symbolic.evaluate(expr, self._variables)
        if abs(value.imag) > ENERGY_IMAG_PART_THRESHOLD:
            logger.warning(f"Ignoring imaginary part of {what}: {value}.")
        return value.real

    def calc_atom_sites(self):
        """Evaluates the spin magnitudes and directions of all sites."""
        for site in self.atoms:
            try:
                mag = self._eval_real(site.spin_mag, f"spin magnitude of '{site.name}'")
                direction = np.array(
                    [self._eval_real(e, f"spin direction of '{site.name}'") for e in site.spin_dir]
                )
            except KeyError as e:
                logger.error(f"Cannot evaluate site '{site.name}': {e}")
                continue

            norm = np.linalg.norm(direction)
            if norm < 1e-12:
                logger.error(f"Spin direction of site '{site.name}' is zero, keeping previous value.")
                continue
            site.spin_mag_calc = mag
            site.spin_dir_calc = direction / norm

    def calc_spin_rotation(self):
        """Builds the local spin frames (u, v vectors) of all sites."""
        field_dir = self._field.dir
        align = self._field.align_spins and np.linalg.norm(field_dir) > 1e-12

        for site in self.atoms:
            direction = field_dir if align else site.spin_dir_calc
            rot = rotation_to(direction)
            site.u = rot[:, 0] + 1j * rot[:, 1]
            site.v = rot[:, 2].copy()

    def calc_exchange_terms(self):
        """Evaluates the 3x3 coupling matrices of all exchange terms."""
        for term in self.exchange_terms:
            try:
                J = symbolic.evaluate(term.J, self._variables) * np.eye(3, dtype=np.complex128)
                if term.dmi is not None:
                    dmi = [symbolic.evaluate(e, self._variables) for e in term.dmi]
                    J = J + skew(dmi)
                if term.J_gen is not None:
                    J = J + np.array(
                        [[symbolic.evaluate(e, self._variables) for e in row] for row in term.J_gen],
                        dtype=np.complex128,
                    )
            except KeyError as e:
                logger.error(f"Cannot evaluate exchange term '{term.name}': {e}")
                continue
            term.J_calc = J

    # ------------------------------------------------------------------
    # spin waves
    # ------------------------------------------------------------------
    def _hamiltonian(self, Q: npt.NDArray[np.float64]) -> npt.NDArray[np.complex128]:
        """Bosonic 2N x 2N Hamiltonian in the basis (a_Q, a^dagger_-Q)."""
        nspins = len(self.atoms)
        M_plus = np.zeros((nspins, nspins), dtype=np.complex128)
        M_minus = np.zeros((nspins, nspins), dtype=np.complex128)
        P = np.zeros((nspins, nspins), dtype=np.complex128)

        for term in self.exchange_terms:
            i, j = term.atom1, term.atom2
            site_i, site_j = self.atoms[i], self.atoms[j]
            S_i, S_j = site_i.spin_mag_calc, site_j.spin_mag_calc
            J = term.J_calc
            f = 0.5 * np.sqrt(S_i * S_j)

            phase = np.exp(2j * np.pi * np.dot(Q, term.dist))
            uJu_conj = site_i.u @ J @ site_j.u.conj()
            uconjJu = site_i.u.conj() @ J @ site_j.u
            uJu = site_i.u @ J @ site_j.u
            vJv = site_i.v @ J @ site_j.v

            for M, ph in ((M_plus, phase), (M_minus, phase.conjugate())):
                M[i, j] += f * uJu_conj * ph
                M[j, i] += f * uconjJu * ph.conjugate()
                M[i, i] -= S_j * vJv
                M[j, j] -= S_i * vJv

            P[i, j] += f * uJu * phase
            P[j, i] += f * uJu * phase.conjugate()

        B = self._field.vector()
        if np.any(B):
            for idx, site in enumerate(self.atoms):
                zeeman = self.g_factor * MU_B_MEV * np.dot(B, site.v)
                M_plus[idx, idx] += zeeman
                M_minus[idx, idx] += zeeman

        return np.block([[M_plus, P], [P.conj().T, M_minus.T]])

    def get_energies(
        self, h: float, k: float, l: float, extra: bool = False
    ) -> List[EnergyAndWeight]:
        """
        Magnon modes at the momentum transfer (h, k, l) in rlu.

        Args:
            h, k, l (float): Momentum transfer in rlu.
            extra (bool): Also return the spin correlation tensors S and
                S_perp of every mode.

        Returns:
            List[EnergyAndWeight]: 2N modes, N energy-loss modes (E > 0)
            followed by their energy-gain partners (E < 0). Empty if the
            model has no sites or the calculation fails.
        """
        nspins = len(self.atoms)
        if nspins == 0:
            return []

        Q = np.array([h, k, l], dtype=float)
        Q_label = f"Q=({h}, {k}, {l})"
        Q_ham = Q - self._bragg if self._bragg is not None else Q

        Hmat = self._hamiltonian(Q_ham)
        energies, T = diagonalize_bosonic(Hmat, nspins, Q_label)
        if energies is None or T is None:
            return []

        # spin operator amplitudes w^alpha in the (a, a^dagger) basis
        phases = np.exp(-2j * np.pi * np.array([np.dot(Q, site.pos) for site in self.atoms]))
        w = np.zeros((3, 2 * nspins), dtype=np.complex128)
        for idx, site in enumerate(self.atoms):
            amp = np.sqrt(0.5 * site.spin_mag_calc) * phases[idx]
            w[:, idx] = amp * site.u.conj()
            w[:, nspins + idx] = amp * site.u

        # mode amplitudes, shape (3, 2N)
        amplitudes = w @ T

        Q_cart = Q @ self._recip
        Q_norm_sq = float(np.dot(Q_cart, Q_cart))
        if Q_norm_sq < Q_ZERO_THRESHOLD:
            projector = np.eye(3)
        else:
            Q_hat = Q_cart / np.sqrt(Q_norm_sq)
            projector = np.eye(3) - np.outer(Q_hat, Q_hat)

        modes: List[EnergyAndWeight] = []
        for mode_idx in range(2 * nspins):
            a = amplitudes[:, mode_idx]
            S = np.outer(a, a.conj()) / nspins
            S_perp = projector * S
            weight_complex = np.sum(S_perp)
            if abs(weight_complex.imag) > ENERGY_IMAG_PART_THRESHOLD:
                logger.warning(
                    f"Significant imaginary part in weight for {Q_label}, mode {mode_idx}: "
                    f"{weight_complex.imag}"
                )
            weight = max(float(weight_complex.real), 0.0)

            mode = EnergyAndWeight(E=float(energies[mode_idx]), weight=weight)
            if extra:
                mode.S = S
                mode.S_perp = projector @ S @ projector
            modes.append(mode)

        return modes


def _parse_complex(value: Union[float, int, complex, str]) -> complex:
    if isinstance(value, str):
        return complex(value.replace(" ", ""))
    return complex(value)
