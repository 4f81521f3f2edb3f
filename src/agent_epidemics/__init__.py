__version__ = "0.1.0"

from .components import Movement
from .components import Recovery
from .components import Transmission
from .components import Waning
from .model import Model
from .model import run
from .model import run_from_file
from .model import step
from .output import ResourceError
from .output import SimulationOutput
from .population import Agent
from .population import Population
from .population import create_population
from .population import initialize_population
from .settings import PositiveNumber
from .settings import Probability
from .settings import Settings
from .settings import ValidationError
from .settings import load_settings
from .settings import validate
from .shared import Census
from .shared import State

__all__ = [
    "Agent",
    "Census",
    "Model",
    "Movement",
    "Population",
    "PositiveNumber",
    "Probability",
    "Recovery",
    "ResourceError",
    "Settings",
    "SimulationOutput",
    "State",
    "Transmission",
    "ValidationError",
    "Waning",
    "create_population",
    "initialize_population",
    "load_settings",
    "run",
    "run_from_file",
    "step",
    "validate",
]
