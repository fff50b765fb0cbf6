#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
S(q,E) Module for Magnon Dynamics.

This module provides the `MagnonModel` class, which turns the discrete
magnon modes of a dynamics engine into a continuous dynamical structure
factor S(q,E) that a fitting or resolution-convolution host can evaluate
at arbitrary (h, k, l, E) points:

1.  Every mode with non-zero weight is broadened by a Gaussian of width
    `sigma` and the sum is scaled by `S0`.
2.  The coherent part is weighted by the Bose population factor at the
    engine's temperature (optional).
3.  An incoherent elastic Gaussian of amplitude `inc_amp` and width
    `inc_sigma` is added.

All parameters can be read and written by name through the `SqwBase`
registry interface.
"""
import copy
import logging
from typing import Any, Iterable, List, NamedTuple, Optional, Union

import numpy as np
import numpy.typing as npt

from .engine import ExternalField, MagDyn
from .linalg import float_equal
from .lineshape import bose_cutoff, gauss_model
from .params import (
    BRAGG_TRIGGERS,
    FIELD_TRIGGERS,
    KeyRule,
    ParameterRegistry,
    VariableRule,
    non_negative_real,
    positive_real,
)
from .sqwbase import (
    KIND_REAL,
    KIND_VECTOR,
    SqwBase,
    SqwVar,
    VarUpdate,
    str_to_bool,
    str_to_real,
    str_to_vector,
)

logger = logging.getLogger(__name__)

DEFAULT_SIGMA: float = 0.05
DEFAULT_INC_SIGMA: float = 0.05


class Mode(NamedTuple):
    energy: float
    weight: float


class MagnonModel(SqwBase):
    """
    Dynamical structure factor of a magnon model.

    Attributes:
        sigma (float): Width of the coherent magnon peaks (meV).
        inc_amp (float): Amplitude of the incoherent elastic line, 0 disables it.
        inc_sigma (float): Width of the incoherent elastic line (meV).
        S0 (float): Overall scale of the coherent intensity.
        use_bose (bool): Weight the coherent part by the Bose factor.
        engine: The magnon dynamics engine (by default a `MagDyn`).
    """

    def __init__(
        self,
        cfg_file: Optional[str] = None,
        engine: Optional[Any] = None,
        use_bose: Optional[bool] = None,
    ):
        """
        Initializes the model, optionally from a configuration file.

        Args:
            cfg_file (Optional[str]): YAML model configuration. Without it the
                model is valid but has no modes.
            engine (Optional[Any]): Dynamics engine to use instead of a new
                `MagDyn`; it has to provide the same methods.
            use_bose (Optional[bool]): Overrides the `sqw.use_bose` setting.
        """
        super().__init__()

        self.sigma: float = DEFAULT_SIGMA
        self.inc_amp: float = 0.0
        self.inc_sigma: float = DEFAULT_INC_SIGMA
        self.S0: float = 1.0
        self.use_bose: bool = True

        self.engine = engine if engine is not None else MagDyn()
        self._destroyed = False
        self._warned_temperature = False

        if cfg_file:
            logger.info(f"Magnon module config file: \"{cfg_file}\".")
            self._ok = bool(self.engine.load(cfg_file))
            config = getattr(self.engine, "config", None)
            if self._ok and config is not None:
                self.sigma = config.sqw.sigma
                self.inc_amp = config.sqw.inc_amp
                self.inc_sigma = config.sqw.inc_sigma
                self.S0 = config.sqw.S0
                self.use_bose = config.sqw.use_bose
            if not self._ok:
                logger.error(f"Magnon model from \"{cfg_file}\" is not usable.")
        else:
            self._ok = True

        if use_bose is not None:
            self.use_bose = bool(use_bose)

        self._registry = self._build_registry()

    # ------------------------------------------------------------------
    # parameter registry
    # ------------------------------------------------------------------
    def _build_registry(self) -> ParameterRegistry:
        def own(attr):
            return lambda: getattr(self, attr)

        def set_own(attr):
            return lambda value: setattr(self, attr, value)

        def bragg():
            G = self.engine.get_bragg_peak()
            return G if len(G) == 3 else None

        return ParameterRegistry(
            [
                KeyRule("sigma", KIND_REAL, own("sigma"), set_own("sigma"), positive_real),
                KeyRule("inc_amp", KIND_REAL, own("inc_amp"), set_own("inc_amp"), non_negative_real),
                KeyRule("inc_sigma", KIND_REAL, own("inc_sigma"), set_own("inc_sigma"), positive_real),
                KeyRule("S0", KIND_REAL, own("S0"), set_own("S0"), str_to_real),
                KeyRule(
                    "T", KIND_REAL,
                    lambda: self.engine.get_temperature(),
                    lambda T: self.engine.set_temperature(T),
                ),
                KeyRule(
                    "cutoff", KIND_REAL,
                    lambda: self.engine.get_bose_cutoff_energy(),
                    lambda E: self.engine.set_bose_cutoff_energy(E),
                    positive_real,
                ),
                KeyRule(
                    "G", KIND_VECTOR, bragg,
                    lambda G: self.engine.set_bragg_peak(*G),
                    str_to_vector, BRAGG_TRIGGERS,
                ),
                KeyRule(
                    "field_dir", KIND_VECTOR,
                    lambda: self.engine.get_external_field().dir,
                    lambda d: self._update_field(dir=d),
                    str_to_vector, FIELD_TRIGGERS,
                ),
                KeyRule(
                    "field_mag", KIND_REAL,
                    lambda: self.engine.get_external_field().mag,
                    lambda B: self._update_field(mag=B),
                    str_to_real, FIELD_TRIGGERS,
                ),
                KeyRule(
                    "align_spins", KIND_REAL,
                    lambda: self.engine.get_external_field().align_spins,
                    lambda flag: self._update_field(align_spins=flag),
                    str_to_bool, FIELD_TRIGGERS,
                ),
                VariableRule(lambda: self.engine),
            ]
        )

    def _update_field(self, **changes):
        ext_field: ExternalField = self.engine.get_external_field()
        for key, value in changes.items():
            setattr(ext_field, key, value)
        self.engine.set_external_field(ext_field)

    @property
    def registry(self) -> ParameterRegistry:
        return self._registry

    def get_vars(self) -> List[SqwVar]:
        return self._registry.enumerate()

    def set_vars(self, vars: Iterable[VarUpdate]) -> List[str]:
        """
        Applies parameter updates given as (name, text) or (name, kind, text).

        Own scalars and engine settings are matched first; any other name is
        treated as a model variable. Bad values are skipped and logged.

        Returns:
            List[str]: Diagnostics for the skipped entries (empty on success).
        """
        vars = list(vars)
        if not vars:
            return []
        return self._registry.apply(vars, self.engine)

    # ------------------------------------------------------------------
    # dispersion, spectral weight and structure factor
    # ------------------------------------------------------------------
    def dispersion(self, h: float, k: float, l: float, extra: bool = False) -> List[Mode]:
        """
        Magnon modes at the momentum transfer (h, k, l).

        Args:
            h, k, l (float): Momentum transfer in rlu.
            extra (bool): Ask the engine for the full correlation data. The
                evaluation path never needs it.

        Returns:
            List[Mode]: (energy, weight) pairs, possibly empty.
        """
        if self._destroyed:
            return []
        return [Mode(m.E, m.weight) for m in self.engine.get_energies(h, k, l, extra)]

    def evaluate(
        self, h: float, k: float, l: float, E: Union[float, npt.NDArray[np.float64]]
    ) -> Union[float, npt.NDArray[np.float64]]:
        """
        S(q,E) at the momentum transfer (h, k, l) and energy transfer E.

        E may be an array, in which case the modes are only calculated once
        and an array of the same shape is returned.
        """
        if np.ndim(E):
            E = np.asarray(E, dtype=float)

        incoh = 0.0
        if not float_equal(self.inc_amp, 0.0):
            incoh = gauss_model(E, 0.0, self.inc_sigma, self.inc_amp, 0.0)

        dS = np.zeros_like(E, dtype=float) if np.ndim(E) else 0.0
        for energy, weight in self.dispersion(h, k, l, False):
            if not float_equal(weight, 0.0):
                dS = dS + gauss_model(E, energy, self.sigma, weight, 0.0)

        coherent = self.S0 * dS
        if self.use_bose:
            coherent = coherent * self._population_factor(E)

        result = coherent + incoh
        if np.ndim(result) == 0:
            return float(result)
        return result

    def _population_factor(self, E):
        T = self.engine.get_temperature()
        if not T > 0.0:
            if not self._warned_temperature:
                logger.warning(
                    f"Temperature T={T} K is not positive, the Bose factor is not applied."
                )
                self._warned_temperature = True
            return 1.0
        return bose_cutoff(E, T, self.engine.get_bose_cutoff_energy())

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def clone(self) -> "MagnonModel":
        """Deep copy sharing no mutable state with this model."""
        return copy.deepcopy(self)

    def destroy(self):
        """Releases the engine state. Calling it again has no effect."""
        if self._destroyed:
            return
        self.engine.clear()
        self._destroyed = True

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def __getstate__(self):
        # the registry holds closures bound to this instance
        state = self.__dict__.copy()
        del state["_registry"]
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._registry = self._build_registry()
