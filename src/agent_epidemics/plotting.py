"""Rendering helpers. They read only the tables of a `SimulationOutput`."""

import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation
from matplotlib.animation import PillowWriter

from .shared import HEALTH_LABELS

__all__ = ["HEALTH_COLORS", "animate_agents", "plot_agents", "plot_states"]

HEALTH_COLORS = {"Susceptible": "tab:blue", "Infected": "tab:red", "Recovered": "tab:green"}


def plot_agents(output, time: int, ax=None, filename=None):
    """
    Scatter plot of agent locations at `time`, coloured by health.

    Args:
        output (SimulationOutput): Results of a run.
        time (int): Timestep to show, 1..total_time.
        ax (matplotlib.axes.Axes, optional): Axes to draw on; a new figure if omitted.
        filename (str | Path, optional): Save the figure here.

    Returns:
        matplotlib.axes.Axes: The axes drawn on.
    """
    frame = output.positions_at(time)
    if ax is None:
        _fig, ax = plt.subplots(figsize=(8, 8))

    for label in HEALTH_LABELS:
        agents = frame[frame.health == label]
        ax.scatter(agents.x, agents.y, s=12, color=HEALTH_COLORS[label], label=label)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.set_title(f"Agents at Tick {time}")
    ax.set_aspect("equal")
    ax.legend(loc="upper right")

    if filename is not None:
        ax.figure.savefig(filename)

    return ax


def plot_states(output, ax=None, filename=None):
    """Susceptible, infected and recovered counts over time."""
    if ax is None:
        _fig, ax = plt.subplots(figsize=(10, 6))

    ticks = range(1, len(output.states) + 1)
    for column, label in zip(output.states.columns, HEALTH_LABELS):
        ax.plot(ticks, output.states[column], color=HEALTH_COLORS[label], label=label)
    ax.set_xlabel("Tick")
    ax.set_ylabel("Agents")
    ax.set_title("Population by Health State")
    ax.legend(loc="upper right")

    if filename is not None:
        ax.figure.savefig(filename)

    return ax


def animate_agents(output, filename, fps: int = 10, side_length: float = None):
    """
    Write an animated GIF of agent locations, one frame per timestep.

    Args:
        output (SimulationOutput): Results of a run with at least one timestep.
        filename (str | Path): Destination of the GIF.
        fps (int): Frames per second.
        side_length (float, optional): Fix the axes to `[0, side_length]`.
    """
    if output.total_time < 1:
        raise ValueError("Nothing to animate: the run has no timesteps.")

    fig, ax = plt.subplots(figsize=(8, 8))

    def draw(time):
        ax.clear()
        plot_agents(output, time, ax=ax)
        if side_length is not None:
            ax.set_xlim(0, side_length)
            ax.set_ylim(0, side_length)

        return ax.collections

    animation = FuncAnimation(fig, draw, frames=range(1, output.total_time + 1), blit=False)
    animation.save(filename, writer=PillowWriter(fps=fps))
    plt.close(fig)

    return filename
