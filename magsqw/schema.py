from typing import List, Dict, Optional, Union, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict


# --- Primitive Types ---
Vector3 = Union[List[float], Tuple[float, float, float]]
# values can be numbers or strings (expressions in the model variables)
ParamValue = Union[float, str]
ParamVector = List[ParamValue]


def _check_length(values, length: int, what: str):
    if values is not None and len(values) != length:
        raise ValueError(f"{what} needs exactly {length} components, got {len(values)}.")
    return values


# --- S(q,E) Module Scalars ---
class SqwParamsConfig(BaseModel):
    sigma: float = Field(default=0.05, gt=0.0, description="Coherent peak width (meV).")
    inc_amp: float = Field(default=0.0, ge=0.0, description="Incoherent amplitude.")
    inc_sigma: float = Field(default=0.05, gt=0.0, description="Incoherent width (meV).")
    S0: float = Field(default=1.0, description="Overall intensity scale.")
    use_bose: bool = True


# --- Crystal Structure ---
class LatticeConfig(BaseModel):
    a: float = Field(default=1.0, gt=0.0)
    b: float = Field(default=1.0, gt=0.0)
    c: float = Field(default=1.0, gt=0.0)
    alpha: float = 90.0
    beta: float = 90.0
    gamma: float = 90.0


class AtomSiteConfig(BaseModel):
    name: str
    pos: Vector3 = [0.0, 0.0, 0.0]
    spin_dir: ParamVector = Field(
        default_factory=lambda: [0.0, 0.0, 1.0],
        description="Classical spin direction [sx, sy, sz], numbers or expressions.",
    )
    spin_mag: ParamValue = 1.0

    @field_validator("pos")
    @classmethod
    def check_pos(cls, v):
        return _check_length(v, 3, "pos")

    @field_validator("spin_dir")
    @classmethod
    def check_spin_dir(cls, v):
        return _check_length(v, 3, "spin_dir")


# --- Interactions ---
class ExchangeTermConfig(BaseModel):
    name: str = ""
    atoms: List[Union[str, int]]  # [atom_1, atom_2], names or indices
    dist: Vector3 = [0.0, 0.0, 0.0]  # cell offset of atom_2 in lattice units
    J: ParamValue = 0.0
    dmi: Optional[ParamVector] = None
    J_gen: Optional[List[ParamVector]] = None  # general 3x3 coupling

    @field_validator("atoms")
    @classmethod
    def check_atoms(cls, v):
        return _check_length(v, 2, "atoms")

    @field_validator("dist")
    @classmethod
    def check_dist(cls, v):
        return _check_length(v, 3, "dist")

    @field_validator("dmi")
    @classmethod
    def check_dmi(cls, v):
        return _check_length(v, 3, "dmi")

    @field_validator("J_gen")
    @classmethod
    def check_J_gen(cls, v):
        if v is not None:
            _check_length(v, 3, "J_gen")
            for row in v:
                _check_length(row, 3, "J_gen row")
        return v


class FieldConfig(BaseModel):
    dir: Vector3 = [0.0, 0.0, 1.0]
    mag: float = 0.0  # Tesla
    align_spins: bool = False

    @field_validator("dir")
    @classmethod
    def check_dir(cls, v):
        return _check_length(v, 3, "field dir")


# --- Scans ---
class QPathConfig(BaseModel):
    points_per_segment: int = 50
    path: List[str]
    E_min: float = 0.0
    E_max: float = 10.0
    E_step: float = Field(default=0.05, gt=0.0)
    # point definitions as dynamic keys, e.g. "G: [0, 0, 0]"
    model_config = ConfigDict(extra='allow')


class OutputConfig(BaseModel):
    scan_data_filename: str = 'scan_data.npz'


class PlottingConfig(BaseModel):
    save_plot: bool = True
    show_plot: bool = False
    disp_plot_filename: str = 'disp_plot.png'
    sqw_plot_filename: str = 'sqw_plot.png'
    disp_title: str = "Dispersion"
    sqw_title: str = "S(Q,E)"
    energy_limits_disp: Optional[List[float]] = None
    cmap: str = 'PuBu_r'

    model_config = ConfigDict(extra='allow')


# --- Main Configuration ---
class MagnonModelConfig(BaseModel):
    sqw: SqwParamsConfig = Field(default_factory=SqwParamsConfig)
    temperature: float = 300.0
    bose_cutoff: float = Field(default=0.02, gt=0.0)
    lattice: LatticeConfig = Field(default_factory=LatticeConfig)
    variables: Dict[str, ParamValue] = Field(default_factory=dict)
    atoms: List[AtomSiteConfig] = Field(default_factory=list)
    exchange_terms: List[ExchangeTermConfig] = Field(default_factory=list)
    field: FieldConfig = Field(default_factory=FieldConfig)
    bragg: Optional[Vector3] = None

    q_path: Optional[QPathConfig] = None
    output: OutputConfig = Field(default_factory=OutputConfig)
    plotting: PlottingConfig = Field(default_factory=PlottingConfig)

    @field_validator("variables")
    @classmethod
    def check_variables(cls, v):
        for name, value in v.items():
            if isinstance(value, str):
                try:
                    complex(value.replace(" ", ""))
                except ValueError as e:
                    raise ValueError(
                        f"Variable '{name}' has a non-numeric value '{value}'."
                    ) from e
        return v

    @field_validator("bragg")
    @classmethod
    def check_bragg(cls, v):
        return _check_length(v, 3, "bragg")

    @model_validator(mode='after')
    def check_atom_references(self):
        names = [atom.name for atom in self.atoms]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate atom names in {names}.")
        for term in self.exchange_terms:
            for ref in term.atoms:
                if isinstance(ref, int):
                    if not 0 <= ref < len(names):
                        raise ValueError(
                            f"Exchange term '{term.name}' references atom index {ref}, "
                            f"but only {len(names)} atoms are defined."
                        )
                elif ref not in names:
                    raise ValueError(
                        f"Exchange term '{term.name}' references unknown atom '{ref}'."
                    )
        return self
