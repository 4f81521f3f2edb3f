import json
import tempfile
import unittest
from pathlib import Path

import numpy as np
import pytest

from agent_epidemics import Model
from agent_epidemics import State
from agent_epidemics import ValidationError
from agent_epidemics import initialize_population
from agent_epidemics import run
from agent_epidemics import run_from_file
from agent_epidemics import step
from utils import make_settings
from utils import reference_run

SEED = 1_234_567


def assert_output_sanity(output, settings):
    n, nticks = settings.n, settings.total_time
    states = output.states
    positions = output.positions

    assert list(states.columns) == ["susceptible", "infected", "recovered"]
    assert len(states) == nticks
    assert np.all(states.values >= 0), "Negative census count"
    assert np.all(states.sum(axis=1) == n), "S + I + R does not equal n"

    assert list(positions.columns) == ["time", "agent_id", "x", "y", "health"]
    assert len(positions) == n * nticks
    if len(positions):
        assert positions.time.between(1, nticks).all()
        assert positions.agent_id.between(1, n).all()
        assert positions.x.between(0.0, settings.side_length).all()
        assert positions.y.between(0.0, settings.side_length).all()
        assert set(positions.health.unique()) <= {"Susceptible", "Infected", "Recovered"}
        assert np.array_equal(positions.groupby("time").size().values, np.full(nticks, n))

    return


@pytest.mark.modeltest
class TestRun(unittest.TestCase):
    def test_output_invariants(self):
        settings = make_settings(n=200, total_time=60, side_length=40.0, contact_radius=4.0, initial_infection_probability=0.05)
        output = run(settings)
        assert_output_sanity(output, settings)
        assert output.n == 200
        assert output.total_time == 60

        return

    def test_positions_census_matches_states(self):
        settings = make_settings(n=150, total_time=30, side_length=30.0, contact_radius=3.0)
        output = run(settings)
        counts = output.positions.groupby(["time", "health"], observed=False).size().unstack(fill_value=0)
        assert np.array_equal(counts["Susceptible"].values, output.states.susceptible.values)
        assert np.array_equal(counts["Infected"].values, output.states.infected.values)
        assert np.array_equal(counts["Recovered"].values, output.states.recovered.values)

        return

    def test_accepts_mapping(self):
        output = run(make_settings(n=20, total_time=5).to_dict())
        assert len(output.states) == 5

        return

    def test_invalid_settings_fail_before_running(self):
        fields = make_settings().to_dict()
        fields["recovery_probability"] = 2.0
        with pytest.raises(ValidationError, match="recovery_probability"):
            run(fields)

        return

    def test_no_transmission_means_infected_never_increase(self):
        settings = make_settings(n=300, total_time=80, side_length=20.0, contact_radius=5.0, initial_infection_probability=0.5, infection_probability=0.0)
        output = run(settings)
        infected = output.states.infected.values
        assert np.all(np.diff(infected) <= 0), "Infected count increased without transmission"

        return

    def test_single_agent_never_infected_by_contact(self):
        settings = make_settings(n=1, total_time=50, initial_infection_probability=0.0, infection_probability=1.0, contact_radius=1_000.0)
        output = run(settings)
        assert np.all(output.states.infected.values == 0)
        assert np.all(output.states.susceptible.values == 1)

        return

    def test_single_infected_agent(self):
        settings = make_settings(n=1, total_time=50, initial_infection_probability=1.0, recovery_probability=1.0, immunity_loss_probability=0.0)
        output = run(settings)
        assert output.states.iloc[0].tolist() == [0, 0, 1]
        assert np.all(output.states.infected.values == 0)

        return

    def test_empty_population(self):
        settings = make_settings(n=0, total_time=10)
        output = run(settings)
        assert len(output.states) == 10
        assert np.all(output.states.values == 0)
        assert len(output.positions) == 0

        return

    def test_no_timesteps(self):
        settings = make_settings(n=10, total_time=0)
        output = run(settings)
        assert len(output.states) == 0
        assert len(output.positions) == 0

        return

    def test_same_seed_same_output(self):
        settings = make_settings(n=100, total_time=40, side_length=30.0, contact_radius=4.0)
        a = run(settings)
        b = run(settings)
        assert a.states.equals(b.states)
        assert a.positions.equals(b.positions)

        return

    def test_grid_contacts_same_output(self):
        settings = make_settings(n=200, total_time=40, side_length=30.0, contact_radius=3.0)
        brute = run(settings)
        grid = run(make_settings(n=200, total_time=40, side_length=30.0, contact_radius=3.0, contact_method="grid"))
        assert brute.states.equals(grid.states)
        assert brute.positions.equals(grid.positions)

        return

    def test_run_from_file(self):
        with tempfile.TemporaryDirectory() as directory:
            path = Path(directory) / "settings.json"
            path.write_text(json.dumps(make_settings(n=30, total_time=10).to_dict()))
            output = run_from_file(path)
        assert run(make_settings(n=30, total_time=10)).states.equals(output.states)

        return


@pytest.mark.modeltest
class TestReference(unittest.TestCase):
    """Seeded runs reproduce, draw for draw, a plain Python rendition of the rules."""

    def check(self, settings):
        output = run(settings, prng=np.random.default_rng(SEED))
        counts, positions = reference_run(settings, np.random.default_rng(SEED))

        assert [tuple(row) for row in output.states.itertuples(index=False)] == counts
        last = output.positions_at(settings.total_time)
        assert np.allclose(last[["x", "y"]].values, np.array(positions[-1]))

        return

    def test_small_scenario(self):
        self.check(make_settings(n=10, total_time=50, initial_infection_probability=0.1, side_length=100.0, contact_radius=10.0))

        return

    def test_dense_scenario(self):
        self.check(
            make_settings(
                n=150,
                total_time=60,
                initial_infection_probability=0.05,
                side_length=30.0,
                contact_radius=4.0,
                infection_probability=0.2,
                recovery_probability=0.1,
                immunity_loss_probability=0.05,
            )
        )

        return


class TestModel(unittest.TestCase):
    def test_step_function_matches_model(self):
        settings = make_settings(n=120, total_time=25, side_length=25.0, contact_radius=3.0)
        output = Model(settings, prng=np.random.default_rng(SEED)).run()

        prng = np.random.default_rng(SEED)
        population = initialize_population(settings, prng)
        for tick in range(settings.total_time):
            census = step(population, settings, prng)
            assert tuple(census) == tuple(output.states.iloc[tick])
            assert sum(census) == settings.n

        assert np.allclose(population.x, output.positions_at(settings.total_time).x.values)

        return

    def test_validating_run(self):
        settings = make_settings(n=200, total_time=30, side_length=20.0, contact_radius=3.0, initial_infection_probability=0.2)
        model = Model(settings)
        model.validating = True
        output = model.run()
        assert_output_sanity(output, settings)

        return

    def test_flow_accounting(self):
        settings = make_settings(n=200, total_time=30, side_length=20.0, contact_radius=3.0, initial_infection_probability=0.2)
        model = Model(settings)
        output = model.run()
        steps = model.steps
        nticks = settings.total_time

        assert tuple(model.population.census()) == tuple(output.states.iloc[-1])
        assert np.array_equal(steps.S[1:] - steps.S[:-1], steps.waned[:nticks].astype(np.int64) - steps.incidence[:nticks])
        assert np.array_equal(steps.I[1:] - steps.I[:-1], steps.incidence[:nticks].astype(np.int64) - steps.recovered[:nticks])
        assert np.array_equal(steps.R[1:] - steps.R[:-1], steps.recovered[:nticks].astype(np.int64) - steps.waned[:nticks])

        return

    def test_components_order(self):
        model = Model(make_settings())
        assert [type(c).__name__ for c in model.components] == ["Movement", "Transmission", "Recovery", "Waning"]

        return

    def test_run_once(self):
        model = Model(make_settings(total_time=2))
        model.run()
        with pytest.raises(RuntimeError):
            model.run()

        return

    def test_seed_from_settings(self):
        a = Model(make_settings(seed=99))
        b = Model(make_settings(seed=99))
        assert np.array_equal(a.population.x, b.population.x)
        assert np.array_equal(a.population.states, b.population.states)

        return

    def test_initial_census_row(self):
        model = Model(make_settings(n=50))
        assert (model.steps.S[0], model.steps.I[0], model.steps.R[0]) == tuple(model.population.census())
        assert model.population.census().recovered == 0
        assert np.all(model.population.states != State.RECOVERED.value)

        return
