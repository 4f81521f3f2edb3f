import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pytest  # noqa: E402

from agent_epidemics import Model  # noqa: E402
from agent_epidemics.plotting import HEALTH_COLORS  # noqa: E402
from agent_epidemics.plotting import animate_agents  # noqa: E402
from agent_epidemics.plotting import plot_agents  # noqa: E402
from agent_epidemics.plotting import plot_states  # noqa: E402
from utils import make_settings  # noqa: E402


@pytest.fixture(scope="module")
def model():
    model = Model(make_settings(n=40, total_time=8, side_length=20.0, contact_radius=3.0, initial_infection_probability=0.3))
    model.run()

    return model


def test_plot_agents(model, tmp_path):
    filename = tmp_path / "agents.png"
    ax = plot_agents(model.output, 8, filename=filename)
    assert filename.exists()
    assert ax.get_title() == "Agents at Tick 8"
    # one scatter per health state
    assert len(ax.collections) == 3
    assert sum(len(c.get_offsets()) for c in ax.collections) == 40
    plt.close(ax.figure)

    return


def test_plot_agents_colours(model):
    ax = plot_agents(model.output, 1)
    frame = model.output.positions_at(1)
    for collection, (label, colour) in zip(ax.collections, HEALTH_COLORS.items()):
        assert collection.get_label() == label
        count = int((frame.health == label).sum())
        assert len(collection.get_offsets()) == count
        if count:
            assert np.allclose(collection.get_facecolor()[0], matplotlib.colors.to_rgba(colour))
    plt.close(ax.figure)

    return


def test_plot_agents_bad_time(model):
    with pytest.raises(ValueError):
        plot_agents(model.output, 9)

    return


def test_plot_states(model, tmp_path):
    fig, ax = plt.subplots()
    filename = tmp_path / "states.png"
    assert plot_states(model.output, ax=ax, filename=filename) is ax
    assert filename.exists()
    assert [line.get_label() for line in ax.get_lines()] == ["Susceptible", "Infected", "Recovered"]
    assert np.array_equal(ax.get_lines()[1].get_ydata(), model.output.states.infected.values)
    plt.close(fig)

    return


def test_animate_agents(model, tmp_path):
    filename = tmp_path / "agents.gif"
    assert animate_agents(model.output, filename, fps=4, side_length=20.0) == filename
    assert filename.stat().st_size > 0

    return


def test_animate_without_timesteps(tmp_path):
    model = Model(make_settings(total_time=0))
    output = model.run()
    with pytest.raises(ValueError, match="Nothing to animate"):
        animate_agents(output, tmp_path / "empty.gif")

    return


def test_visualize_pdf(model, tmp_path):
    filename = tmp_path / "model.pdf"
    assert model.visualize(pdf=True, filename=filename) == filename
    assert filename.read_bytes().startswith(b"%PDF")

    return


def test_visualize_before_run(tmp_path):
    model = Model(make_settings())
    with pytest.raises(RuntimeError):
        model.visualize(filename=tmp_path / "model.pdf")

    return
