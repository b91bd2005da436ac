"""
Size- and temperature-dependent kinetic parameters for one strain.

Each rate constant X follows the same allometric/Arrhenius law:

    X = X_a * size**X_b * exp(X_E * (T - T0) / (k * T * T0))

with k the Boltzmann constant in eV/K. The half-saturation constant is
additionally divided by the absolute temperature, and the asymptotic
Droop growth rate mu_inf is derived from mu_max, Vmax, Qmax and Qmin.

Units follow a nitrogen currency: cells L^-1, umol N cell^-1,
umol N L^-1 and days. Cell size is a cell volume in um^3.
"""

import math
from dataclasses import dataclass, asdict, fields, replace as dc_replace
from typing import Dict, Optional

from .errors import InvalidKineticParameters


BOLTZMANN_EV = 8.6173324e-5     # eV / K

# Order of the six allometric rate constants; each has _a, _b and _E fields
RATE_CONSTANTS = ("Qmin", "Qmax", "Vmax", "mu_max", "H_up", "m")


@dataclass(frozen=True)
class MetaParameters:
    """
    Allometric coefficients, exponents and activation energies.

    Shared read-only by both strains (and by every worker of a sweep).
    Coefficients ``*_a`` and exponents ``*_b`` define the power law in
    cell volume; ``*_E`` are activation energies in eV. ``T0`` is the
    reference temperature and ``T`` the ambient temperature, both Kelvin.
    """
    # Minimum quota (umol N cell^-1)
    Qmin_a: float = 10 ** -9.1
    Qmin_b: float = 0.77
    Qmin_E: float = 0.0
    # Maximum quota (umol N cell^-1)
    Qmax_a: float = 10 ** -8.4
    Qmax_b: float = 0.81
    Qmax_E: float = 0.0
    # Maximum uptake rate (umol N cell^-1 day^-1)
    Vmax_a: float = 10 ** -8.1
    Vmax_b: float = 0.82
    Vmax_E: float = 0.46
    # Maximum growth rate (day^-1)
    mu_max_a: float = 1.3
    mu_max_b: float = -0.13
    mu_max_E: float = 0.33
    # Half-saturation for uptake (umol N L^-1, before division by T)
    H_up_a: float = 30.0
    H_up_b: float = 0.17
    H_up_E: float = 0.0
    # Mortality (day^-1)
    m_a: float = 0.1
    m_b: float = -0.05
    m_E: float = 0.33
    # Temperatures (K)
    T0: float = 293.15
    T: float = 293.15

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not math.isfinite(value):
                raise ValueError(f"MetaParameters.{f.name} must be finite, got {value}")
        if self.T0 == 0:
            raise ValueError("Reference temperature T0 must be nonzero")
        if self.T <= 0:
            raise ValueError(f"Temperature must be > 0 K, got {self.T}")

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "MetaParameters":
        """Build from a (possibly partial) mapping; missing keys keep defaults."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown metaparameters: {sorted(unknown)}")
        return cls(**{k: float(v) for k, v in data.items()})

    def replace(self, **changes) -> "MetaParameters":
        return dc_replace(self, **changes)


DEFAULT_METAPARAMETERS = MetaParameters()


@dataclass(frozen=True)
class KineticParameters:
    """Rate constants of one strain at one temperature."""
    Qmin: float         # minimum internal quota
    Qmax: float         # maximum internal quota
    Vmax: float         # maximum uptake rate
    mu_inf: float       # asymptotic Droop growth rate
    H_up: float         # uptake half-saturation
    m: float            # mortality

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not math.isfinite(value):
                raise InvalidKineticParameters(f"{f.name} is not finite ({value})")
        if not self.Qmin > 0:
            raise InvalidKineticParameters(f"Qmin must be > 0, got {self.Qmin}")
        if not self.Qmax > self.Qmin:
            raise InvalidKineticParameters(
                f"Qmax ({self.Qmax}) must exceed Qmin ({self.Qmin})"
            )
        if not self.Vmax > 0:
            raise InvalidKineticParameters(f"Vmax must be > 0, got {self.Vmax}")
        if self.mu_inf < 0:
            raise InvalidKineticParameters(f"mu_inf must be >= 0, got {self.mu_inf}")
        if not self.H_up > 0:
            raise InvalidKineticParameters(f"H_up must be > 0, got {self.H_up}")
        if self.m < 0:
            raise InvalidKineticParameters(f"m must be >= 0, got {self.m}")

    @property
    def Q_midpoint(self) -> float:
        return 0.5 * (self.Qmin + self.Qmax)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def arrhenius_factor(E: float, T: float, T0: float) -> float:
    """Temperature correction exp(E (T - T0) / (k T T0))."""
    return math.exp(E * (T - T0) / (BOLTZMANN_EV * T * T0))


def allometric_rate(a: float, b: float, E: float, size: float, T: float, T0: float) -> float:
    """a * size**b, corrected to temperature T."""
    return a * size ** b * arrhenius_factor(E, T, T0)


def compute_mu_inf(mu_max: float, Vmax: float, Qmax: float, Qmin: float) -> float:
    """
    Asymptotic growth rate of the Droop model.

    Returns nan when the denominator is not positive; callers decide how to
    report it.
    """
    denominator = Vmax * (Qmax - Qmin) - mu_max * Qmin * (Qmax - Qmin)
    if not denominator > 0:
        return float("nan")
    return (mu_max * Vmax * Qmax) / denominator


def compute_kinetic_parameters(
    size: float,
    meta: MetaParameters = DEFAULT_METAPARAMETERS,
    temperature: Optional[float] = None,
) -> KineticParameters:
    """
    Map cell size and temperature to the strain's rate constants.

    Parameters
    ----------
    size : float
        Cell volume (um^3), > 0.
    meta : MetaParameters
        Allometric and temperature metaparameters.
    temperature : float, optional
        Ambient temperature in Kelvin. Defaults to ``meta.T``.

    Returns
    -------
    KineticParameters

    Raises
    ------
    InvalidKineticParameters
        If the inputs are out of range or the resulting constants are
        unphysical (Qmax <= Qmin, Vmax <= 0, non-positive mu_inf
        denominator).
    """
    T = meta.T if temperature is None else float(temperature)
    if not (math.isfinite(size) and size > 0):
        raise InvalidKineticParameters(
            f"Cell size must be finite and > 0, got {size}", size=size, temperature=T
        )
    if not (math.isfinite(T) and T > 0):
        raise InvalidKineticParameters(
            f"Temperature must be finite and > 0 K, got {T}", size=size, temperature=T
        )

    rates = {}
    try:
        for name in RATE_CONSTANTS:
            rates[name] = allometric_rate(
                getattr(meta, f"{name}_a"),
                getattr(meta, f"{name}_b"),
                getattr(meta, f"{name}_E"),
                size, T, meta.T0,
            )
    except OverflowError as e:
        raise InvalidKineticParameters(
            f"Rate constant overflow at size={size:g}, T={T:g} K",
            size=size, temperature=T,
        ) from e
    rates["H_up"] /= T

    Qmin, Qmax, Vmax = rates["Qmin"], rates["Qmax"], rates["Vmax"]
    if not Qmax > Qmin:
        raise InvalidKineticParameters(
            f"Qmax ({Qmax:.4g}) <= Qmin ({Qmin:.4g}) at size={size:g}, T={T:g} K",
            size=size, temperature=T,
        )
    if not Vmax > 0:
        raise InvalidKineticParameters(
            f"Vmax ({Vmax:.4g}) <= 0 at size={size:g}, T={T:g} K",
            size=size, temperature=T,
        )

    mu_inf = compute_mu_inf(rates["mu_max"], Vmax, Qmax, Qmin)
    if not (math.isfinite(mu_inf) and mu_inf > 0):
        raise InvalidKineticParameters(
            f"mu_inf undefined at size={size:g}, T={T:g} K: uptake capacity "
            f"Vmax={Vmax:.4g} does not exceed mu_max*Qmin="
            f"{rates['mu_max'] * Qmin:.4g}",
            size=size, temperature=T,
        )

    try:
        return KineticParameters(
            Qmin=Qmin,
            Qmax=Qmax,
            Vmax=Vmax,
            mu_inf=mu_inf,
            H_up=rates["H_up"],
            m=rates["m"],
        )
    except InvalidKineticParameters as e:
        raise InvalidKineticParameters(
            f"{e} at size={size:g}, T={T:g} K", size=size, temperature=T
        ) from e
