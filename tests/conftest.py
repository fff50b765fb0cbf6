import copy
import textwrap

import matplotlib
import numpy as np
import pytest

from magsqw.engine import EnergyAndWeight, ExternalField, Variable

matplotlib.use("Agg")


class StubEngine:
    """Dynamics engine returning fixed modes and recording recomputations."""

    def __init__(self, modes=None):
        self.modes = list(modes or [])
        self.calls = []
        self.extra_flags = []
        self.cleared = 0
        self.config = None
        self._temperature = 300.0
        self._cutoff = 0.02
        self._bragg = None
        self._field = ExternalField()
        self._variables = {}

    def load(self, filepath):
        return True

    def get_energies(self, h, k, l, extra=False):
        self.extra_flags.append(extra)
        return [EnergyAndWeight(E, w) for E, w in self.modes]

    def get_temperature(self):
        return self._temperature

    def set_temperature(self, T):
        self._temperature = float(T)

    def get_bose_cutoff_energy(self):
        return self._cutoff

    def set_bose_cutoff_energy(self, E):
        self._cutoff = float(E)

    def get_bragg_peak(self):
        return np.zeros(0) if self._bragg is None else self._bragg.copy()

    def set_bragg_peak(self, h, k, l):
        self._bragg = np.array([h, k, l], dtype=float)

    def get_external_field(self):
        return copy.deepcopy(self._field)

    def set_external_field(self, ext_field):
        self._field = copy.deepcopy(ext_field)

    def get_variables(self):
        return [Variable(name, value) for name, value in self._variables.items()]

    def set_variable(self, var):
        self._variables[var.name] = complex(var.value)

    def calc_atom_sites(self):
        self.calls.append("atom_sites")

    def calc_spin_rotation(self):
        self.calls.append("spin_rotation")

    def calc_exchange_terms(self):
        self.calls.append("exchange_terms")

    def clear(self):
        self.modes = []
        self._variables = {}
        self.cleared += 1


@pytest.fixture
def stub_engine():
    return StubEngine()


FERRO_CHAIN = textwrap.dedent(
    """
    sqw:
      sigma: 0.1
      inc_amp: 0.0
      inc_sigma: 0.05
      S0: 1.0
      use_bose: false

    temperature: 10.0

    variables:
      J1: -1.0
      S: 1.0

    atoms:
      - name: "Cu1"
        pos: [0, 0, 0]
        spin_dir: [0, 0, 1]
        spin_mag: "S"

    exchange_terms:
      - name: "J1"
        atoms: ["Cu1", "Cu1"]
        dist: [1, 0, 0]
        J: "J1"

    q_path:
      G: [0, 0, 0]
      X: [0.5, 0, 0]
      path: ["G", "X"]
      points_per_segment: 11
      E_min: 0.0
      E_max: 5.0
      E_step: 0.1

    output:
      scan_data_filename: "out/scan.npz"

    plotting:
      save_plot: true
      disp_plot_filename: "out/disp.png"
      sqw_plot_filename: "out/sqw.png"
    """
)

AFM_CHAIN = textwrap.dedent(
    """
    variables:
      J: 2.0

    atoms:
      - name: "A"
        pos: [0, 0, 0]
        spin_dir: [0, 0, 1]
        spin_mag: 0.5
      - name: "B"
        pos: [0.5, 0, 0]
        spin_dir: [0, 0, -1]
        spin_mag: 0.5

    exchange_terms:
      - name: "J_AB"
        atoms: ["A", "B"]
        dist: [0, 0, 0]
        J: "J"
      - name: "J_BA"
        atoms: [1, 0]
        dist: [1, 0, 0]
        J: "J"
    """
)


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text)
    return str(path)


@pytest.fixture
def ferro_chain_file(tmp_path):
    return _write(tmp_path, "ferro_chain.yaml", FERRO_CHAIN)


@pytest.fixture
def afm_chain_file(tmp_path):
    return _write(tmp_path, "afm_chain.yaml", AFM_CHAIN)


@pytest.fixture
def write_config(tmp_path):
    def _write_config(text, name="model.yaml"):
        return _write(tmp_path, name, textwrap.dedent(text))
    return _write_config
