"""
The four SIRS transition rules and the model components that apply them.

Rules run in a fixed order each tick: Movement, Transmission, Recovery, Waning.
Every rule draws from the run's `np.random.Generator` one agent at a time, in id
order, so a seeded run is reproducible draw for draw. The kernels are compiled
but deliberately sequential: Transmission reads health as it is updated, so an
agent infected earlier in the pass can infect a later agent in the same tick.
"""

import matplotlib.pyplot as plt
import numba as nb
import numpy as np

from .newutils import validate
from .shared import State

__all__ = [
    "Movement",
    "Recovery",
    "Transmission",
    "Waning",
    "infect_agents",
    "lose_immunity",
    "move_agents",
    "recover_agents",
]

# numba reads these as compile-time constants
SUSCEPTIBLE = State.SUSCEPTIBLE.value
INFECTED = State.INFECTED.value


@nb.njit(nogil=True, cache=True)
def nb_move(xs, ys, speeds, side_length, prng):
    for i in range(len(xs)):
        angle = 2.0 * np.pi * prng.random()
        x = (xs[i] + speeds[i] * np.cos(angle)) % side_length
        y = (ys[i] + speeds[i] * np.sin(angle)) % side_length
        # a tiny negative coordinate wraps to exactly side_length
        xs[i] = x if x < side_length else 0.0
        ys[i] = y if y < side_length else 0.0

    return


@nb.njit(nogil=True, cache=True)
def nb_infect(states, offsets, contacts, probability, prng):
    infected = 0
    for i in range(len(states)):
        if states[i] == SUSCEPTIBLE:
            for k in range(offsets[i], offsets[i + 1]):
                if states[contacts[k]] == INFECTED and prng.random() < probability:
                    states[i] = INFECTED
                    infected += 1
                    break

    return infected


@nb.njit(nogil=True, cache=True)
def nb_transition(states, source, target, probability, prng):
    changed = 0
    for i in range(len(states)):
        if states[i] == source and prng.random() < probability:
            states[i] = target
            changed += 1

    return changed


def move_agents(population, side_length: float, prng: np.random.Generator) -> int:
    """Displace every agent by its speed in a uniformly random direction, wrapping at the edges."""
    nb_move(population.x, population.y, population.speeds, side_length, prng)

    return len(population)


def infect_agents(population, infection_probability: float, prng: np.random.Generator) -> int:
    """
    Expose each Susceptible agent to its Infected contacts.

    Contacts are scanned in stored order with one draw per Infected contact,
    stopping at the first successful draw.

    Returns:
        int: Number of newly infected agents.
    """
    return nb_infect(population.states, population.offsets, population.contacts, infection_probability, prng)


def recover_agents(population, recovery_probability: float, prng: np.random.Generator) -> int:
    return nb_transition(population.states, State.INFECTED.value, State.RECOVERED.value, recovery_probability, prng)


def lose_immunity(population, immunity_loss_probability: float, prng: np.random.Generator) -> int:
    return nb_transition(population.states, State.RECOVERED.value, State.SUSCEPTIBLE.value, immunity_loss_probability, prng)


def _check_census(model, tick: int, component: str) -> None:
    # Make sure flow based accounting matches census based accounting
    steps = model.steps
    expected = (int(steps.S[tick + 1]), int(steps.I[tick + 1]), int(steps.R[tick + 1]))
    actual = tuple(model.population.census())
    assert expected == actual, f"{component}: census does not match S/I/R counts.\nExpected: {expected}\nActual: {actual}"

    return


class Movement:
    def __init__(self, model):
        self.model = model

        return

    def prevalidate_step(self, tick: int) -> None:
        _check_census(self.model, tick, "Movement")

        return

    def postvalidate_step(self, tick: int) -> None:
        population = self.model.population
        side_length = self.model.settings.side_length
        assert np.all((population.x >= 0.0) & (population.x < side_length)), "Agent x coordinates must lie in [0, side_length)."
        assert np.all((population.y >= 0.0) & (population.y < side_length)), "Agent y coordinates must lie in [0, side_length)."
        _check_census(self.model, tick, "Movement")

        return

    @validate(pre=prevalidate_step, post=postvalidate_step)
    def step(self, tick: int) -> None:
        move_agents(self.model.population, self.model.settings.side_length, self.model.prng)

        return

    def plot(self, fig=None):
        _fig = plt.figure(figsize=(12, 9), dpi=128) if fig is None else fig
        _fig.suptitle("Distribution of Agent Speed")
        plt.hist(self.model.population.speeds, bins=50)
        plt.xlabel("Speed (distance per tick)")
        plt.ylabel("Agents")

        yield
        return


class Transmission:
    def __init__(self, model):
        self.model = model
        self.model.steps.add_scalar_property("incidence", dtype=np.uint32)

        return

    def prevalidate_step(self, tick: int) -> None:
        _check_census(self.model, tick, "Transmission")

        return

    def postvalidate_step(self, tick: int) -> None:
        _check_census(self.model, tick, "Transmission")
        assert self.model.steps.incidence[tick] <= self.model.steps.S[tick], "Cannot infect more agents than were susceptible."

        return

    @validate(pre=prevalidate_step, post=postvalidate_step)
    def step(self, tick: int) -> None:
        incidence = infect_agents(self.model.population, self.model.settings.infection_probability, self.model.prng)

        # state(t+1) = state(t) + ∆state(t)
        self.model.steps.S[tick + 1] -= incidence
        self.model.steps.I[tick + 1] += incidence
        # Record today's ∆
        self.model.steps.incidence[tick] = incidence

        return

    def plot(self, fig=None):
        _fig = plt.figure(figsize=(12, 9), dpi=128) if fig is None else fig
        _fig.suptitle("Incidence over Time")
        plt.plot(np.arange(1, self.model.settings.total_time + 1), self.model.steps.incidence[: self.model.settings.total_time])
        plt.xlabel("Tick")
        plt.ylabel("New Infections")

        yield
        return


class Recovery:
    def __init__(self, model):
        self.model = model
        self.model.steps.add_scalar_property("recovered", dtype=np.uint32)

        return

    def prevalidate_step(self, tick: int) -> None:
        _check_census(self.model, tick, "Recovery")

        return

    def postvalidate_step(self, tick: int) -> None:
        _check_census(self.model, tick, "Recovery")

        return

    @validate(pre=prevalidate_step, post=postvalidate_step)
    def step(self, tick: int) -> None:
        recovered = recover_agents(self.model.population, self.model.settings.recovery_probability, self.model.prng)

        # state(t+1) = state(t) + ∆state(t)
        self.model.steps.I[tick + 1] -= recovered
        self.model.steps.R[tick + 1] += recovered
        # Record today's ∆
        self.model.steps.recovered[tick] = recovered

        return

    def plot(self, fig=None):
        _fig = plt.figure(figsize=(12, 9), dpi=128) if fig is None else fig
        _fig.suptitle("Recoveries over Time")
        plt.plot(np.arange(1, self.model.settings.total_time + 1), self.model.steps.recovered[: self.model.settings.total_time])
        plt.xlabel("Tick")
        plt.ylabel("Recoveries")

        yield
        return


class Waning:
    def __init__(self, model):
        self.model = model
        self.model.steps.add_scalar_property("waned", dtype=np.uint32)

        return

    def prevalidate_step(self, tick: int) -> None:
        _check_census(self.model, tick, "Waning")

        return

    def postvalidate_step(self, tick: int) -> None:
        _check_census(self.model, tick, "Waning")
        steps = self.model.steps
        assert steps.S[tick + 1] + steps.I[tick + 1] + steps.R[tick + 1] == len(self.model.population), (
            "S + I + R must equal the population size."
        )

        return

    @validate(pre=prevalidate_step, post=postvalidate_step)
    def step(self, tick: int) -> None:
        waned = lose_immunity(self.model.population, self.model.settings.immunity_loss_probability, self.model.prng)

        # state(t+1) = state(t) + ∆state(t)
        self.model.steps.R[tick + 1] -= waned
        self.model.steps.S[tick + 1] += waned
        # Record today's ∆
        self.model.steps.waned[tick] = waned

        return

    def plot(self, fig=None):
        _fig = plt.figure(figsize=(12, 9), dpi=128) if fig is None else fig
        _fig.suptitle("Loss of Immunity over Time")
        plt.plot(np.arange(1, self.model.settings.total_time + 1), self.model.steps.waned[: self.model.settings.total_time])
        plt.xlabel("Tick")
        plt.ylabel("Agents Returning to Susceptible")

        yield
        return
