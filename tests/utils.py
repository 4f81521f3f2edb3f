import math

import numpy as np

from agent_epidemics import Population
from agent_epidemics import Settings
from agent_epidemics import State

__all__ = ["build_population", "make_settings", "reference_run"]

S = State.SUSCEPTIBLE.value
I = State.INFECTED.value  # noqa: E741
R = State.RECOVERED.value


def make_settings(**overrides) -> Settings:
    fields = {
        "n": 10,
        "total_time": 20,
        "initial_infection_probability": 0.1,
        "side_length": 100.0,
        "contact_radius": 10.0,
        "mean_speed": 1.0,
        "std_speed": 0.1,
        "infection_probability": 0.5,
        "recovery_probability": 0.1,
        "immunity_loss_probability": 0.05,
        "seed": 20240601,
    }
    fields.update(overrides)

    return Settings(**fields)


def build_population(states, contacts, locations=None, speeds=None) -> Population:
    """Hand-built population; `contacts` is a list of index lists, one per agent."""
    n = len(states)
    locations = np.zeros((n, 2)) if locations is None else np.asarray(locations, dtype=np.float64)
    speeds = np.zeros(n) if speeds is None else np.asarray(speeds, dtype=np.float64)
    offsets = np.zeros(n + 1, dtype=np.int64)
    offsets[1:] = np.cumsum([len(c) for c in contacts])
    flat = np.array([j for c in contacts for j in c], dtype=np.int64)

    return Population.from_arrays(locations[:, 0].copy(), locations[:, 1].copy(), speeds, np.array(states, dtype=np.int8), offsets, flat)


def reference_run(settings: Settings, prng: np.random.Generator):
    """
    Plain Python rendition of the SIRS rules with the same draw order as the model.

    Returns:
        tuple: (list of (S, I, R) per tick, list of (x, y) lists per tick)
    """
    n = settings.n
    side = settings.side_length
    health = ["Infected" if draw else "Susceptible" for draw in prng.random(n) < settings.initial_infection_probability]
    locations = prng.random((n, 2)) * side
    locations[locations >= side] = 0.0
    xs = [float(v) for v in locations[:, 0]]
    ys = [float(v) for v in locations[:, 1]]
    speeds = [float(v) for v in np.abs(settings.mean_speed + settings.std_speed * prng.standard_normal(n))]

    contacts = [
        [j for j in range(n) if i != j and math.sqrt((xs[i] - xs[j]) ** 2 + (ys[i] - ys[j]) ** 2) < settings.contact_radius]
        for i in range(n)
    ]

    counts = []
    positions = []
    for _ in range(settings.total_time):
        for i in range(n):
            angle = 2.0 * math.pi * prng.random()
            x = (xs[i] + speeds[i] * math.cos(angle)) % side
            y = (ys[i] + speeds[i] * math.sin(angle)) % side
            xs[i] = x if x < side else 0.0
            ys[i] = y if y < side else 0.0
        for i in range(n):
            if health[i] == "Susceptible":
                for c in contacts[i]:
                    if health[c] == "Infected" and prng.random() < settings.infection_probability:
                        health[i] = "Infected"
                        break
        for i in range(n):
            if health[i] == "Infected" and prng.random() < settings.recovery_probability:
                health[i] = "Recovered"
        for i in range(n):
            if health[i] == "Recovered" and prng.random() < settings.immunity_loss_probability:
                health[i] = "Susceptible"
        counts.append((health.count("Susceptible"), health.count("Infected"), health.count("Recovered")))
        positions.append(list(zip(xs, ys)))

    return counts, positions
