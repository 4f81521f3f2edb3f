"""
This module defines the `Model` class that drives an agent-based SIRS simulation:
mobile point agents in a square toroidal area, infection spreading along the
contact graph frozen at creation, recovery, and loss of immunity.

**Imports:**
- datetime: For timestamps announced on the console.
- click: For console output.
- numpy as np: For per-step accounting arrays.
- laser_core.laserframe: Provides the LaserFrame class for per-step and snapshot storage.
- laser_core.random: Provides random number generator seeding utilities.
- matplotlib: For plotting results.
- tqdm: For progress bar visualization during runs.
"""

from contextlib import nullcontext
from datetime import datetime

import click
import numpy as np
from laser_core import LaserFrame
from laser_core.random import seed as seed_prng
from matplotlib import pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages
from matplotlib.figure import Figure
from tqdm import tqdm

from .components import Movement
from .components import Recovery
from .components import Transmission
from .components import Waning
from .components import infect_agents
from .components import lose_immunity
from .components import move_agents
from .components import recover_agents
from .newutils import TimingStats as ts
from .output import RecordSink
from .output import SimulationOutput
from .plotting import plot_agents
from .plotting import plot_states
from .population import Population
from .population import initialize_population
from .settings import Settings
from .settings import load_settings
from .settings import validate
from .shared import Census

__all__ = ["Model", "run", "run_from_file", "step"]


def step(population: Population, settings: Settings, prng: np.random.Generator) -> Census:
    """
    Advance `population` one timestep in place: move, infect, recover, lose immunity.

    No I/O is performed.

    Returns:
        Census: Counts after the step.
    """
    move_agents(population, settings.side_length, prng)
    infect_agents(population, settings.infection_probability, prng)
    recover_agents(population, settings.recovery_probability, prng)
    lose_immunity(population, settings.immunity_loss_probability, prng)

    return population.census()


class Model:
    """
    An agent-based SIRS simulation.

    The `Model` manages:
      - The validated settings and the run PRNG.
      - The agent population and its frozen contact graph.
      - The transition components, applied in order each tick.
      - Per-step S/I/R accounting and per-agent snapshots.

    Typical usage:
    ```python
    settings = validate({"n": 500, "total_time": 100, ...})
    model = Model(settings)
    output = model.run()
    model.visualize(pdf=True)
    ```
    """

    def __init__(self, settings, prng: np.random.Generator = None, name: str = "SIRS agents") -> None:
        """
        Initialize the model.

        Parameters
        ----------
        settings : Settings | Mapping | PropertySet
            Run configuration; anything other than `Settings` is validated first.
        prng : np.random.Generator, optional
            Source of all random draws. Seeded from `settings.seed` (or the clock) if omitted.
        name : str, optional
            Name of the model, used in console output and file names.

        Side Effects
        ------------
        - Seeds the random number generator when `prng` is omitted.
        - Creates the agent population and its contact graph.
        """
        self.tinit = datetime.now(tz=None)  # noqa: DTZ005
        self.settings = validate(settings)
        self.name = name
        click.echo(f"{self.tinit}: Creating the {name} model…")

        if prng is None:
            prng = seed_prng(self.settings.seed if self.settings.seed is not None else self.tinit.microsecond)
        self.prng = prng
        self.validating = False

        nticks = self.settings.total_time
        click.echo(f"Initializing the {name} model with {self.settings.n:,} agents…")
        with ts.start(f"Model Initialization: {name}"):
            self.population = initialize_population(self.settings, self.prng)

        # row t holds the census after t ticks, row 0 the initial census
        self.steps = LaserFrame(nticks + 1)
        self.steps.add_scalar_property("S", dtype=np.int32)
        self.steps.add_scalar_property("I", dtype=np.int32)
        self.steps.add_scalar_property("R", dtype=np.int32)
        self.steps.S[0], self.steps.I[0], self.steps.R[0] = self.population.census()

        nrows = self.settings.n * nticks
        self.snapshots = LaserFrame(max(nrows, 1), initial_count=0)
        self.snapshots.add_scalar_property("time", dtype=np.uint32)
        self.snapshots.add_scalar_property("agent_id", dtype=np.uint32)
        self.snapshots.add_scalar_property("x", dtype=np.float64)
        self.snapshots.add_scalar_property("y", dtype=np.float64)
        self.snapshots.add_scalar_property("health", dtype=np.int8)

        self.components = [Movement, Transmission, Recovery, Waning]
        self.output = None

        return

    @property
    def components(self) -> list:
        """The component instances, in the order they are applied each tick."""
        return self._components

    @components.setter
    def components(self, components: list) -> None:
        """
        Configure the model components.

        Parameters
        ----------
        components : list
            Component classes, each instantiated with `(self)`, or ready-made instances.
        """
        self._components = [component(self) if isinstance(component, type) else component for component in components]

        return

    def step(self, tick: int) -> Census:
        """Apply every component for `tick` and return the census after it."""
        steps = self.steps
        # state(t+1) = state(t) + ∆state(t), initialize state(t+1) with state(t)
        steps.S[tick + 1] = steps.S[tick]
        steps.I[tick + 1] = steps.I[tick]
        steps.R[tick + 1] = steps.R[tick]

        for c in self.components:
            with ts.start(f"{c.__class__.__name__}.step()"):
                c.step(tick)

        return Census(int(steps.S[tick + 1]), int(steps.I[tick + 1]), int(steps.R[tick + 1]))

    def snapshot(self, tick: int) -> None:
        """Append one row per agent with its location and health after `tick`."""
        population = self.population
        if len(population) == 0:
            return
        first, last = self.snapshots.add(len(population))
        self.snapshots.time[first:last] = tick + 1
        self.snapshots.agent_id[first:last] = population.ids
        self.snapshots.x[first:last] = population.x
        self.snapshots.y[first:last] = population.y
        self.snapshots.health[first:last] = population.states

        return

    def run(self, strict: bool = False) -> SimulationOutput:
        """
        Execute the model simulation.

        For each tick (0..total_time-1):
          - Apply all components.
          - Record the census and one snapshot row per agent.
          - Append the census to the record file when recording.

        Parameters
        ----------
        strict : bool, optional
            Raise `ResourceError` if writing the record file fails mid-run,
            instead of warning and carrying on without it.

        Returns
        -------
        SimulationOutput
            The states and positions tables.
        """
        if self.output is not None:
            raise RuntimeError(f"The {self.name} model has already been run.")

        nticks = self.settings.total_time
        self.tstart = datetime.now(tz=None)  # noqa: DTZ005
        click.echo(f"{self.tstart}: Running the {self.name} model for {nticks:,} ticks…")

        sink = RecordSink(self.settings.record_file, strict=strict) if self.settings.record else nullcontext()
        with ts.start(f"Running Simulation: {self.name}"), sink as recorder:
            for tick in tqdm(range(nticks), desc=f"Running Simulation: {self.name}"):
                census = self.step(tick)
                with ts.start("snapshot"):
                    self.snapshot(tick)
                if recorder is not None:
                    recorder.write(census)

        self.tfinish = datetime.now(tz=None)  # noqa: DTZ005
        click.echo(f"Completed the {self.name} model at {self.tfinish}…")

        count = self.snapshots.count
        self.output = SimulationOutput.from_arrays(
            np.column_stack((self.steps.S[1:], self.steps.I[1:], self.steps.R[1:])),
            self.snapshots.time[:count],
            self.snapshots.agent_id[:count],
            self.snapshots.x[:count],
            self.snapshots.y[:count],
            self.snapshots.health[:count],
            n=self.settings.n,
            total_time=nticks,
        )

        return self.output

    def visualize(self, pdf: bool = True, filename=None):
        """
        Generate visualizations for the model and all components.

        Parameters
        ----------
        pdf : bool, optional
            If True (default), save plots to a PDF file, `filename` or
            "<model name> <timestamp>.pdf". If False, show them with `plt.show()`.
        filename : str | Path, optional
            Destination of the PDF.

        Returns
        -------
        The PDF filename, or None when plots are shown interactively.
        """
        if self.output is None:
            raise RuntimeError(f"Run the {self.name} model before visualizing it.")

        instances = [self, *self.components]
        if not pdf:
            for instance in instances:
                for _plot in instance.plot():
                    plt.show()
            return None

        click.echo("Generating PDF output…")
        pdf_filename = filename if filename is not None else f"{self.name} {self.tstart:%Y-%m-%d %H%M%S}.pdf"
        with PdfPages(pdf_filename) as pages:
            for instance in instances:
                for _plot in instance.plot():
                    pages.savefig()
                    plt.close()

        click.echo(f"PDF output saved to '{pdf_filename}'.")

        return pdf_filename

    def plot(self, fig: Figure = None):
        """
        Yield two plots: S/I/R counts over time, and agent locations after the last tick.
        """
        _fig = plt.figure(figsize=(12, 9), dpi=128) if fig is None else fig
        _fig.suptitle(f"{self.name}: Population by Health State")
        plot_states(self.output, ax=_fig.gca())

        yield

        if self.output.total_time > 0:
            _fig = plt.figure(figsize=(12, 9), dpi=128) if fig is None else fig
            _fig.suptitle(f"{self.name}: Agents after Tick {self.output.total_time}")
            plot_agents(self.output, self.output.total_time, ax=_fig.gca())

            yield

        return


def run(settings, prng: np.random.Generator = None, strict: bool = False) -> SimulationOutput:
    """
    Validate `settings`, build the population, and run every timestep.

    Raises:
        ValidationError: If `settings` is invalid; nothing is built.
        ResourceError: If the record file cannot be opened (or, with `strict`, written).
    """
    model = Model(validate(settings), prng=prng)

    return model.run(strict=strict)


def run_from_file(filename, prng: np.random.Generator = None, strict: bool = False) -> SimulationOutput:
    return run(load_settings(filename), prng=prng, strict=strict)
