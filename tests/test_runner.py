# test_runner.py
import os

import numpy as np
from numpy.testing import assert_allclose
import pytest

from magsqw.config_loader import load_model_config
from magsqw.runner import generate_q_path_from_config, run_scan


def test_generate_q_path(ferro_chain_file):
    q = generate_q_path_from_config(load_model_config(ferro_chain_file))
    assert q.shape == (11, 3)
    assert_allclose(q[0], [0, 0, 0])
    assert_allclose(q[-1], [0.5, 0, 0])


def test_generate_q_path_shares_segment_ends(write_config):
    config = load_model_config(
        write_config(
            """
            q_path:
              A: [0, 0, 0]
              B: [1, 0, 0]
              C: [1, 1, 0]
              path: [A, B, C]
              points_per_segment: 5
            """
        )
    )
    q = generate_q_path_from_config(config)
    assert q.shape == (9, 3)
    assert_allclose(q[4], [1, 0, 0])


def test_generate_q_path_undefined_label(write_config, caplog):
    config = load_model_config(
        write_config("q_path:\n  A: [0, 0, 0]\n  path: [A, Z]\n")
    )
    assert generate_q_path_from_config(config).shape == (0, 3)
    assert "Undefined point" in caplog.text


def test_generate_q_path_without_section(write_config):
    assert generate_q_path_from_config(load_model_config(write_config("{}\n"))).shape == (0, 3)


def test_run_scan_writes_data_and_plots(ferro_chain_file, tmp_path):
    data_file = run_scan(ferro_chain_file)
    assert data_file == str(tmp_path / "out" / "scan.npz")

    data = np.load(data_file)
    assert data["q_vectors"].shape == (11, 3)
    assert data["energies"].shape == (11, 2)
    assert data["intensities"].shape == (11, len(data["E_axis"]))
    assert data["E_axis"][0] == 0.0
    assert data["E_axis"][-1] == pytest.approx(5.0)
    assert os.path.exists(tmp_path / "out" / "disp.png")
    assert os.path.exists(tmp_path / "out" / "sqw.png")


def test_run_scan_errors(tmp_path, write_config):
    with pytest.raises(FileNotFoundError):
        run_scan(str(tmp_path / "missing.yaml"))
    with pytest.raises(ValueError, match="q_path"):
        run_scan(write_config("atoms:\n  - name: A\n"))
