import logging
import os
from typing import List, Optional

import typer
from typing_extensions import Annotated

from magsqw import runner
from magsqw.config_loader import load_model_config
from magsqw.core import MagnonModel
from magsqw.plugin import sqw_info

app = typer.Typer(help="magsqw: S(q,E) of magnon models for fitting and convolution hosts")

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(message)s', datefmt='%H:%M:%S')
logger = logging.getLogger("magsqw")

TEMPLATE = """
sqw:
  sigma: 0.05
  inc_amp: 0.0
  inc_sigma: 0.05
  S0: 1.0
  use_bose: true

temperature: 10.0
bose_cutoff: 0.02

lattice:
  a: 4.0
  b: 4.0
  c: 4.0

variables:
  J1: -1.0

atoms:
  - name: "Fe1"
    pos: [0, 0, 0]
    spin_dir: [0, 0, 1]
    spin_mag: 1.0

exchange_terms:
  - name: "J1_a"
    atoms: ["Fe1", "Fe1"]
    dist: [1, 0, 0]
    J: "J1"

q_path:
  G: [0, 0, 0]
  X: [0.5, 0, 0]
  path: ["G", "X"]
  points_per_segment: 50
  E_min: -1.0
  E_max: 6.0
  E_step: 0.02
""".strip()

ConfigArg = Annotated[str, typer.Argument(help="Path to the model YAML file")]
SetOption = Annotated[
    Optional[List[str]],
    typer.Option("--set", "-s", help="Parameter update NAME=VALUE, may be repeated"),
]


def _load_model(config_file: str, updates: Optional[List[str]] = None) -> MagnonModel:
    if not os.path.exists(config_file):
        typer.secho(f"Error: File {config_file} not found.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    model = MagnonModel(config_file)
    if not model.is_ok():
        typer.secho(f"Error: Could not set up the model from {config_file}.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    pairs = []
    for item in updates or []:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            typer.secho(f"Error: Malformed update '{item}', expected NAME=VALUE.", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        pairs.append((name.strip(), value.strip()))

    for msg in model.set_vars(pairs):
        typer.secho(msg, fg=typer.colors.YELLOW)
    return model


@app.command()
def init(
    filename: Annotated[str, typer.Argument(help="Filename for the new config")] = "config.yaml"
):
    """
    Generate a template configuration file.
    """
    if os.path.exists(filename):
        typer.confirm(f"{filename} already exists. Overwrite?", abort=True)

    with open(filename, "w") as f:
        f.write(TEMPLATE + "\n")
    typer.echo(f"Created template config: {filename}")


@app.command()
def validate(config_file: ConfigArg):
    """
    Validate a configuration file against the schema.
    """
    if not os.path.exists(config_file):
        typer.secho(f"Error: File {config_file} not found.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        load_model_config(config_file)
    except ValueError as e:
        typer.secho("Validation Failed:", fg=typer.colors.RED)
        typer.echo(str(e))
        raise typer.Exit(code=1)
    typer.secho(f"Success: {config_file} is valid.", fg=typer.colors.GREEN)


@app.command()
def info():
    """
    Show the module identification.
    """
    version, ident, long_name = sqw_info()
    typer.echo(f"{long_name} ({ident}), version {version}")


@app.command()
def params(config_file: ConfigArg, updates: SetOption = None):
    """
    List the model parameters as NAME KIND VALUE.
    """
    model = _load_model(config_file, updates)
    for var in model.get_vars():
        typer.echo(f"{var.name:<16} {var.kind:<8} {var.value}")


@app.command("eval")
def evaluate(
    config_file: ConfigArg,
    h: float,
    k: float,
    l: float,
    E: float,
    updates: SetOption = None,
):
    """
    Evaluate S(q,E) at a single point. Use "--" before negative numbers.
    """
    model = _load_model(config_file, updates)
    typer.echo(f"{model.evaluate(h, k, l, E):.8g}")


@app.command()
def disp(
    config_file: ConfigArg,
    h: float,
    k: float,
    l: float,
    updates: SetOption = None,
):
    """
    Print the magnon modes (energy, weight) at a q-point.
    """
    model = _load_model(config_file, updates)
    modes = model.dispersion(h, k, l)
    if not modes:
        typer.secho("No modes.", fg=typer.colors.YELLOW)
    for mode in modes:
        typer.echo(f"{mode.energy:14.6f} {mode.weight:14.6f}")


@app.command()
def run(
    config_file: ConfigArg,
    processes: Annotated[Optional[int], typer.Option(help="Worker processes for the S(q,E) map")] = None,
):
    """
    Run the q-path scan defined in the configuration file.
    """
    try:
        data_file = runner.run_scan(config_file, processes=processes)
    except (OSError, ValueError) as e:
        typer.secho(f"Calculation failed: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.secho(f"Calculation completed successfully, data in {data_file}.", fg=typer.colors.GREEN)


# Entry point for setuptools
def main():
    app()


if __name__ == "__main__":
    app()
