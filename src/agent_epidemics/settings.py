"""
Validated configuration for an agent-based SIRS run.

Raw numeric configuration is routed through `Probability` (values in [0, 1]) or
`PositiveNumber` (values >= 0) before it is stored on an immutable `Settings`.
Any failure surfaces as a `ValidationError` naming the offending field; a
partially constructed `Settings` is never returned.

Settings may be built directly, from a mapping or `PropertySet` with `validate()`,
or from a YAML/JSON file with `load_settings()`.
"""

import json
import math
import numbers
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import fields as dataclass_fields
from pathlib import Path
from typing import Optional

import yaml
from laser_core import PropertySet

__all__ = [
    "CONTACT_METHODS",
    "DEFAULT_RECORD_FILE",
    "PositiveNumber",
    "Probability",
    "Settings",
    "ValidationError",
    "load_settings",
    "read_settings",
    "validate",
]

DEFAULT_RECORD_FILE = "Timeseries.csv"
CONTACT_METHODS = ("brute", "grid")


class ValidationError(ValueError):
    """A configuration value lies outside its allowed domain."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


def _as_real(value, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(f"{what} must be a real number, got {value!r}")
    return value


class Probability:
    """A real value constrained to [0, 1]."""

    __slots__ = ("value",)

    def __init__(self, value) -> None:
        value = _as_real(value, "Probability value")
        # written this way round so NaN fails too
        if not (0.0 <= value <= 1.0):
            raise ValidationError(f"Probability value must be between 0 and 1, got {value}")
        self.value = float(value)

    def __float__(self) -> float:
        return self.value

    def __repr__(self) -> str:
        return f"Probability({self.value})"


class PositiveNumber:
    """A non-negative number. Integers stay integers, reals stay reals."""

    __slots__ = ("value",)

    def __init__(self, value) -> None:
        value = _as_real(value, "Value")
        if not (value >= 0):
            raise ValidationError(f"Value must be positive, got {value}")
        self.value = value

    def __repr__(self) -> str:
        return f"PositiveNumber({self.value})"


_COUNTS = ("n", "total_time")
_LENGTHS = ("side_length", "contact_radius", "mean_speed", "std_speed")
_PROBABILITIES = (
    "initial_infection_probability",
    "infection_probability",
    "recovery_probability",
    "immunity_loss_probability",
)


@dataclass(frozen=True)
class Settings:
    """
    Parameters for one simulation run.

    Attributes:
        n: Number of agents.
        total_time: Number of timesteps to simulate.
        initial_infection_probability: Chance each agent starts Infected.
        side_length: Side of the square (toroidal) area agents move in.
        contact_radius: Agents closer than this at creation are contacts.
        mean_speed: Mean of the normal draw for agent speed.
        std_speed: Standard deviation of the normal draw for agent speed.
        infection_probability: Per infected contact chance of infection.
        recovery_probability: Per step chance an infected agent recovers.
        immunity_loss_probability: Per step chance a recovered agent becomes susceptible.
        record: Write per-step counts to `record_file` while running.
        record_file: Destination of the per-step counts.
        seed: Seed for the run PRNG; None seeds from the clock.
        contact_method: "brute" (reference pairwise scan) or "grid" (cell list).
    """

    n: int
    total_time: int
    initial_infection_probability: float
    side_length: float
    contact_radius: float
    mean_speed: float
    std_speed: float
    infection_probability: float
    recovery_probability: float
    immunity_loss_probability: float
    record: bool = False
    record_file: str = DEFAULT_RECORD_FILE
    seed: Optional[int] = None
    contact_method: str = "brute"

    def __post_init__(self) -> None:
        for name in _COUNTS:
            value = self._checked(name, PositiveNumber)
            if not float(value).is_integer():
                raise ValidationError(f"{name}: must be a whole number, got {value}", field=name)
            object.__setattr__(self, name, int(value))

        for name in _LENGTHS:
            value = float(self._checked(name, PositiveNumber))
            if math.isinf(value):
                raise ValidationError(f"{name}: must be finite, got {value}", field=name)
            object.__setattr__(self, name, value)
        # side_length is the modulus of the toroidal wrap
        if self.side_length == 0.0:
            raise ValidationError("side_length: must be greater than 0", field="side_length")

        for name in _PROBABILITIES:
            object.__setattr__(self, name, self._checked(name, Probability))

        if not isinstance(self.record, bool):
            raise ValidationError(f"record: must be true or false, got {self.record!r}", field="record")
        if not isinstance(self.record_file, (str, Path)) or not str(self.record_file):
            raise ValidationError(f"record_file: must be a non-empty path, got {self.record_file!r}", field="record_file")
        object.__setattr__(self, "record_file", str(self.record_file))

        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, numbers.Integral) or self.seed < 0):
            raise ValidationError(f"seed: must be a non-negative integer, got {self.seed!r}", field="seed")
        if self.contact_method not in CONTACT_METHODS:
            raise ValidationError(f"contact_method: must be one of {CONTACT_METHODS}, got {self.contact_method!r}", field="contact_method")

        return

    def _checked(self, name: str, kind):
        try:
            return kind(getattr(self, name)).value
        except ValidationError as ex:
            raise ValidationError(f"{name}: {ex}", field=name) from ex

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in dataclass_fields(self)}


def validate(settings_fields) -> Settings:
    """
    Build a `Settings` from a key-value structure.

    Args:
        settings_fields (Mapping | PropertySet | Settings): Raw configuration.

    Returns:
        Settings: The validated settings.

    Raises:
        ValidationError: On unknown or missing keys, or any out-of-range value.
    """
    if isinstance(settings_fields, Settings):
        return settings_fields
    if isinstance(settings_fields, PropertySet):
        settings_fields = settings_fields.to_dict()
    if not isinstance(settings_fields, Mapping):
        raise ValidationError(f"Settings must be a mapping of keys to values, got {type(settings_fields).__name__}")

    known = {f.name for f in dataclass_fields(Settings)}
    unknown = sorted(set(settings_fields) - known)
    if unknown:
        raise ValidationError(f"Unknown settings: {', '.join(map(str, unknown))}", field=str(unknown[0]))

    try:
        return Settings(**settings_fields)
    except TypeError as ex:
        # missing required keys
        raise ValidationError(str(ex)) from ex


def read_settings(filename) -> dict:
    """Read raw settings from a YAML (.yaml, .yml) or JSON (.json) file."""
    path = Path(filename)
    suffix = path.suffix.lower()
    if suffix not in (".yaml", ".yml", ".json"):
        raise ValidationError(f"Unsupported settings file type '{path.suffix}' for {path}")

    with path.open("r") as file:
        raw = json.load(file) if suffix == ".json" else yaml.safe_load(file)

    if not isinstance(raw, dict):
        raise ValidationError(f"Settings file {path} must contain a mapping at the top level")

    return raw


def load_settings(filename) -> Settings:
    return validate(read_settings(filename))
