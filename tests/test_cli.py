# test_cli.py
import os

import pytest
from typer.testing import CliRunner

from magsqw.cli import app

runner = CliRunner()


def test_info():
    result = runner.invoke(app, ["info"])
    assert result.exit_code == 0
    assert "Magnon Dynamics (magnonmod)" in result.stdout


def test_validate(ferro_chain_file, write_config, tmp_path):
    result = runner.invoke(app, ["validate", ferro_chain_file])
    assert result.exit_code == 0
    assert "is valid" in result.stdout

    result = runner.invoke(app, ["validate", write_config("sqw:\n  sigma: 0\n")])
    assert result.exit_code == 1
    assert "Validation Failed" in result.stdout

    result = runner.invoke(app, ["validate", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1


def test_params(ferro_chain_file):
    result = runner.invoke(app, ["params", ferro_chain_file, "--set", "sigma=0.3", "-s", "J2=2"])
    assert result.exit_code == 0
    lines = {line.split()[0]: line.split()[1:] for line in result.stdout.splitlines() if line.strip()}
    assert lines["sigma"] == ["real", "0.3"]
    assert lines["J1"] == ["real", "-1.0"]
    assert lines["J2"] == ["real", "2.0"]
    assert lines["field_dir"][0] == "vector"


def test_params_reports_rejected_updates(ferro_chain_file):
    result = runner.invoke(app, ["params", ferro_chain_file, "--set", "sigma=-1"])
    assert result.exit_code == 0
    assert "Skipping parameter 'sigma'" in result.stdout

    result = runner.invoke(app, ["params", ferro_chain_file, "--set", "sigma"])
    assert result.exit_code == 1


def test_eval_and_disp(ferro_chain_file):
    result = runner.invoke(app, ["eval", ferro_chain_file, "0.25", "0", "0", "2.0"])
    assert result.exit_code == 0
    # mode at 2 meV with weight 1/2, sigma 0.1, no Bose factor
    assert float(result.stdout.strip()) == pytest.approx(0.5 / (0.1 * 2.5066282746310002))

    result = runner.invoke(app, ["disp", ferro_chain_file, "0.5", "0", "0"])
    assert result.exit_code == 0
    energies = [float(line.split()[0]) for line in result.stdout.splitlines()]
    assert energies[0] == pytest.approx(4.0)
    assert energies[1] == pytest.approx(-4.0)


def test_invalid_model(tmp_path):
    result = runner.invoke(app, ["disp", str(tmp_path / "missing.yaml"), "0", "0", "0"])
    assert result.exit_code == 1


def test_init(tmp_path):
    target = tmp_path / "new.yaml"
    result = runner.invoke(app, ["init", str(target)])
    assert result.exit_code == 0
    assert target.exists()

    result = runner.invoke(app, ["validate", str(target)])
    assert result.exit_code == 0

    result = runner.invoke(app, ["disp", str(target), "0.25", "0", "0"])
    assert result.exit_code == 0


def test_run(ferro_chain_file, tmp_path):
    result = runner.invoke(app, ["run", ferro_chain_file])
    assert result.exit_code == 0
    assert os.path.exists(tmp_path / "out" / "scan.npz")