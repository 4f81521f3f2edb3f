"""
Agent population: creation, storage and the frozen contact graph.

Agents live in a `LaserFrame` (one scalar property per field, indexed 0..n-1 with
agent id = index + 1). The contact graph is computed once, at creation, and stored
in compressed row form: the contacts of agent index `i` are
`contacts[offsets[i]:offsets[i + 1]]`, held as agent *indices* in ascending order.
"""

import math
from dataclasses import dataclass

import numba as nb
import numpy as np
from laser_core import LaserFrame

from .shared import Census
from .shared import State

__all__ = [
    "Agent",
    "Population",
    "brute_force_contacts",
    "cell_list_contacts",
    "create_population",
    "distance",
    "initialize_population",
]

# Upper bound on cells per axis for the cell list
MAX_CELLS = 1024


@dataclass(frozen=True)
class Agent:
    """Read-only view of one agent. `contacts` holds agent ids, not indices."""

    id: int
    health: State
    location: tuple
    speed: float
    contacts: tuple


def distance(a: Agent, b: Agent) -> float:
    return math.sqrt((a.location[0] - b.location[0]) ** 2 + (a.location[1] - b.location[1]) ** 2)


class Population:
    def __init__(self, people: LaserFrame, offsets: np.ndarray, contacts: np.ndarray):
        self.people = people
        self.offsets = offsets
        self.contacts = contacts

        return

    @classmethod
    def from_arrays(cls, x, y, speeds, states, offsets, contacts) -> "Population":
        """
        Wrap per-agent arrays (index i is agent id i + 1) and a compressed contact graph.

        The contact arrays are made read-only: the graph is fixed for the run.
        """
        n = len(x)
        people = LaserFrame(max(n, 1), initial_count=n)
        people.add_scalar_property("id", dtype=np.uint32)
        people.add_scalar_property("state", dtype=np.int8, default=State.SUSCEPTIBLE.value)
        people.add_scalar_property("x", dtype=np.float64)
        people.add_scalar_property("y", dtype=np.float64)
        people.add_scalar_property("speed", dtype=np.float64)

        people.id[:n] = np.arange(1, n + 1, dtype=np.uint32)
        people.state[:n] = states
        people.x[:n] = x
        people.y[:n] = y
        people.speed[:n] = speeds

        offsets = np.ascontiguousarray(offsets, dtype=np.int64)
        contacts = np.ascontiguousarray(contacts, dtype=np.int64)
        assert len(offsets) == n + 1 and offsets[-1] == len(contacts), "Contact offsets do not match the population."
        offsets.flags.writeable = False
        contacts.flags.writeable = False

        return cls(people, offsets, contacts)

    def __len__(self) -> int:
        return self.people.count

    # convenience views over the active agents
    @property
    def ids(self) -> np.ndarray:
        return self.people.id[: self.people.count]

    @property
    def states(self) -> np.ndarray:
        return self.people.state[: self.people.count]

    @property
    def x(self) -> np.ndarray:
        return self.people.x[: self.people.count]

    @property
    def y(self) -> np.ndarray:
        return self.people.y[: self.people.count]

    @property
    def speeds(self) -> np.ndarray:
        return self.people.speed[: self.people.count]

    def contacts_of(self, index: int) -> np.ndarray:
        """Contact indices of the agent at `index`, in stored order."""
        return self.contacts[self.offsets[index] : self.offsets[index + 1]]

    def agent(self, index: int) -> Agent:
        if not 0 <= index < len(self):
            raise IndexError(f"Agent index {index} out of range for population of {len(self)}")
        return Agent(
            id=int(self.ids[index]),
            health=State(self.states[index]),
            location=(float(self.x[index]), float(self.y[index])),
            speed=float(self.speeds[index]),
            contacts=tuple(int(c) + 1 for c in self.contacts_of(index)),
        )

    def __getitem__(self, index: int) -> Agent:
        return self.agent(index)

    def __iter__(self):
        for index in range(len(self)):
            yield self.agent(index)

    def census(self) -> Census:
        counts = np.bincount(self.states, minlength=len(State))
        return Census(int(counts[State.SUSCEPTIBLE.value]), int(counts[State.INFECTED.value]), int(counts[State.RECOVERED.value]))


@nb.njit(nogil=True, parallel=True, cache=True)
def nb_count_contacts(x, y, radius, counts):
    n = len(x)
    for i in nb.prange(n):
        count = 0
        for j in range(n):
            if i != j and np.sqrt((x[i] - x[j]) ** 2 + (y[i] - y[j]) ** 2) < radius:
                count += 1
        counts[i] = count

    return


@nb.njit(nogil=True, parallel=True, cache=True)
def nb_fill_contacts(x, y, radius, offsets, contacts):
    n = len(x)
    for i in nb.prange(n):
        k = offsets[i]
        for j in range(n):
            if i != j and np.sqrt((x[i] - x[j]) ** 2 + (y[i] - y[j]) ** 2) < radius:
                contacts[k] = j
                k += 1

    return


def brute_force_contacts(x: np.ndarray, y: np.ndarray, radius: float):
    """
    Pairwise scan over every ordered pair (i, j), i != j.

    Returns:
        tuple: `(offsets, contacts)` with `offsets` of length n + 1.
    """
    n = len(x)
    counts = np.zeros(n, dtype=np.int64)
    nb_count_contacts(x, y, radius, counts)
    offsets = np.zeros(n + 1, dtype=np.int64)
    np.cumsum(counts, out=offsets[1:])
    contacts = np.empty(offsets[-1], dtype=np.int64)
    nb_fill_contacts(x, y, radius, offsets, contacts)

    return offsets, contacts


@nb.njit(nogil=True, parallel=True, cache=True)
def nb_cell_contacts(x, y, radius, cellx, celly, ncells, order, starts, offsets, contacts, counting):
    for i in nb.prange(len(x)):
        k = 0 if counting else offsets[i]
        for cx in range(max(cellx[i] - 1, 0), min(cellx[i] + 2, ncells)):
            for cy in range(max(celly[i] - 1, 0), min(celly[i] + 2, ncells)):
                cell = cx * ncells + cy
                for m in range(starts[cell], starts[cell + 1]):
                    j = order[m]
                    if i != j and np.sqrt((x[i] - x[j]) ** 2 + (y[i] - y[j]) ** 2) < radius:
                        if not counting:
                            contacts[k] = j
                        k += 1
        if counting:
            offsets[i + 1] = k
        else:
            contacts[offsets[i] : k] = np.sort(contacts[offsets[i] : k])

    return


def cell_list_contacts(x: np.ndarray, y: np.ndarray, radius: float, side_length: float):
    """
    Same graph as `brute_force_contacts`, found by binning agents into square cells
    at least `radius` wide and only comparing agents in neighbouring cells.
    """
    n = len(x)
    if n == 0 or radius <= 0.0:
        return np.zeros(n + 1, dtype=np.int64), np.empty(0, dtype=np.int64)

    ncells = max(1, min(MAX_CELLS, int(side_length // radius)))
    width = side_length / ncells
    cellx = np.minimum((x // width).astype(np.int64), ncells - 1)
    celly = np.minimum((y // width).astype(np.int64), ncells - 1)
    cellids = cellx * ncells + celly
    order = np.argsort(cellids, kind="stable")
    starts = np.zeros(ncells * ncells + 1, dtype=np.int64)
    np.cumsum(np.bincount(cellids, minlength=ncells * ncells), out=starts[1:])

    offsets = np.zeros(n + 1, dtype=np.int64)
    placeholder = np.empty(0, dtype=np.int64)
    nb_cell_contacts(x, y, radius, cellx, celly, ncells, order, starts, offsets, placeholder, True)
    np.cumsum(offsets, out=offsets)
    contacts = np.empty(offsets[-1], dtype=np.int64)
    nb_cell_contacts(x, y, radius, cellx, celly, ncells, order, starts, offsets, contacts, False)

    return offsets, contacts


def create_population(
    n: int,
    initial_infection_probability: float,
    area_size: float,
    contact_radius: float,
    mean_speed: float,
    std_speed: float,
    prng: np.random.Generator,
    contact_method: str = "brute",
) -> Population:
    """
    Create `n` agents and their frozen contact graph.

    Each agent is Infected with probability `initial_infection_probability` (else
    Susceptible), placed uniformly in `[0, area_size)²`, and given the speed
    `|mean_speed + std_speed * Z|`, Z standard normal.

    Args:
        n (int): Number of agents.
        initial_infection_probability (float): Chance an agent starts Infected.
        area_size (float): Side of the square area.
        contact_radius (float): Strict upper bound on contact distance.
        mean_speed (float): Mean of the speed draw.
        std_speed (float): Standard deviation of the speed draw.
        prng (np.random.Generator): Source of all draws.
        contact_method (str): "brute" or "grid"; both give the same graph.

    Returns:
        Population: The agents, ids 1..n.
    """
    states = np.where(prng.random(n) < initial_infection_probability, State.INFECTED.value, State.SUSCEPTIBLE.value)
    locations = prng.random((n, 2)) * area_size
    # float rounding can land exactly on area_size
    locations[locations >= area_size] = 0.0
    speeds = np.abs(mean_speed + std_speed * prng.standard_normal(n))

    x = locations[:, 0].copy()
    y = locations[:, 1].copy()
    if contact_method == "grid":
        offsets, contacts = cell_list_contacts(x, y, contact_radius, area_size)
    else:
        offsets, contacts = brute_force_contacts(x, y, contact_radius)

    return Population.from_arrays(x, y, speeds, states, offsets, contacts)


def initialize_population(settings, prng: np.random.Generator) -> Population:
    return create_population(
        settings.n,
        settings.initial_infection_probability,
        settings.side_length,
        settings.contact_radius,
        settings.mean_speed,
        settings.std_speed,
        prng,
        contact_method=settings.contact_method,
    )
