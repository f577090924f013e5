"""Command-line utilities of pytest-courier.

`schema` prints the JSON Schema of the DSL, `run` executes a case file
outside of pytest and prints the execution log of every run.
"""

import logging
from pathlib import Path
from sys import exit as sys_exit

from click import Choice, argument, echo, group, option, secho
from click import Path as PathParam
from yaml import SafeLoader

from pytest_courier.errors import DSLError
from pytest_courier.jsonschema import SchemaGenerator
from pytest_courier.settings import CourierSettings

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')

InputFilepath = PathParam(
    exists=True,
    dir_okay=False,
    readable=True,
    path_type=Path,
)

STATE_COLORS = {
    'succeeded': 'green',
    'failed': 'red',
    'abandoned': 'yellow',
}


@group(help='Command-line utilities for pytest-courier.')
def cli() -> None:
    """Root CLI group for pytest-courier tools."""
    return None


@cli.command(
    name='schema',
    help='Print the pytest-courier JSON Schema to standard output.',
)
def print_schema() -> None:
    """Generate and print the JSON Schema."""
    echo(SchemaGenerator.make_schema())


@cli.command(
    name='run',
    help='Run a case file, one run per parameter combination.',
)
@argument('filepath', type=InputFilepath)
@option(
    '--log-level',
    type=Choice(LOG_LEVELS, case_sensitive=False),
    default='WARNING',
    show_default=True,
    help='Level of engine logs written to standard error.',
)
@option(
    '--fail-later',
    is_flag=True,
    default=False,
    help='Keep executing top-level actions after a failure.',
)
def run_case(filepath: Path, log_level: str, fail_later: bool) -> None:
    """Run a case file and print the outcome of every run.

    Exits with status 1 if any run does not succeed, 2 if the file is invalid.
    """
    logging.basicConfig(
        level=log_level.upper(),
        format='%(asctime)s %(levelname)-8s %(threadName)s %(name)s: %(message)s',
    )

    from pytest_courier.core import DocumentParser  # noqa: PLC0415
    from pytest_courier.plugin.case import TestPlan  # noqa: PLC0415
    from pytest_courier.plugin.spec import TestSpec  # noqa: PLC0415

    class RunLoader(SafeLoader):
        pass

    settings = CourierSettings(**({'fail_fast': False} if fail_later else {}))

    try:
        parser = DocumentParser(RunLoader, strict=False, auto_build=True)
        with filepath.open('rt', encoding='utf-8') as content:
            header, steps = parser.parse_file(content)
    except DSLError as error:
        secho(f'{error}', fg='red', err=True)
        sys_exit(2)

    failed = False
    for params in TestSpec.prepare_params(header):
        name = TestSpec.make_name(filepath.stem, params)

        plan = TestPlan(
            header,
            steps,
            params,
            parser=parser,
            settings=settings,
            name=name,
            filename=f'{filepath}',
        )

        try:
            result = plan.run()
        except DSLError as error:
            secho(f'{name}: {error}', fg='red', err=True)
            failed = True
            continue

        secho(f'{name}: {result.state}', fg=STATE_COLORS.get(result.state), bold=True)
        for record in result.log:
            echo(f'  {record}')
        for error in result.errors:
            echo(f'{error.kind}: {error}', err=True)

        failed |= not result.succeeded

    sys_exit(1 if failed else 0)


if __name__ == '__main__':
    cli()
