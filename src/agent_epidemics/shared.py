from enum import Enum
from typing import NamedTuple

import numpy as np

__all__ = ["HEALTH_LABELS", "Census", "State"]


class State(Enum):
    SUSCEPTIBLE = 0
    INFECTED = 1
    RECOVERED = 2

    def __new__(cls, value):
        obj = object.__new__(cls)
        obj._value_ = np.int8(value)
        return obj

    @property
    def label(self) -> str:
        return self.name.capitalize()


# Indexed by state code
HEALTH_LABELS = tuple(state.label for state in State)


class Census(NamedTuple):
    susceptible: int
    infected: int
    recovered: int
