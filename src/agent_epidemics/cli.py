"""Command line entry point: run a simulation from a YAML or JSON settings file."""

from dataclasses import replace
from pathlib import Path

import click

from .model import Model
from .newutils import TimingStats as ts
from .output import ResourceError
from .plotting import animate_agents
from .settings import ValidationError
from .settings import load_settings


@click.command()
@click.argument("settings_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--seed", type=int, default=None, help="Override the PRNG seed from the settings file.")
@click.option("--states", "states_file", type=click.Path(dir_okay=False, path_type=Path), help="Write the states table to this CSV.")
@click.option(
    "--positions", "positions_file", type=click.Path(dir_okay=False, path_type=Path), help="Write the positions table to this CSV."
)
@click.option("--pdf", "pdf_file", type=click.Path(dir_okay=False, path_type=Path), help="Write model plots to this PDF.")
@click.option("--animation", "animation_file", type=click.Path(dir_okay=False, path_type=Path), help="Write an animated GIF of the agents.")
@click.option("--strict", is_flag=True, help="Fail if the record file cannot be written.")
@click.option("--validating", is_flag=True, help="Cross-check per-step accounting against a census.")
@click.option("--timing", is_flag=True, help="Print timing statistics when done.")
def main(settings_file, seed, states_file, positions_file, pdf_file, animation_file, strict, validating, timing):
    """Run the agent-based SIRS simulation configured in SETTINGS_FILE."""
    try:
        settings = load_settings(settings_file)
        if seed is not None:
            settings = replace(settings, seed=seed)
        model = Model(settings)
        model.validating = validating
        output = model.run(strict=strict)
    except (ValidationError, ResourceError) as ex:
        raise click.ClickException(str(ex)) from ex

    last = output.states.iloc[-1] if len(output.states) else None
    if last is not None:
        click.echo(f"Final census: susceptible={last.susceptible:,} infected={last.infected:,} recovered={last.recovered:,}")

    if states_file is not None:
        output.states.to_csv(states_file, index=False)
        click.echo(f"States table saved to '{states_file}'.")
    if positions_file is not None:
        output.positions.to_csv(positions_file, index=False)
        click.echo(f"Positions table saved to '{positions_file}'.")
    if pdf_file is not None:
        model.visualize(pdf=True, filename=pdf_file)
    if animation_file is not None and output.total_time > 0:
        animate_agents(output, animation_file, side_length=model.settings.side_length)
        click.echo(f"Animation saved to '{animation_file}'.")

    if timing:
        ts.freeze()
        click.echo(ts.to_string(scale="ms"))

    return


if __name__ == "__main__":
    main()
