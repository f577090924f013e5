"""Runtime execution layer for parsed test cases.

This module binds parsed DSL documents to the test runner: the header
provides initial variables, endpoints, validators and settings
overrides; the steps are the top-level actions. It also integrates the
execution with pytest by providing a custom pytest.Item implementation.
"""

from functools import partial
from os import linesep
from typing import TYPE_CHECKING

import pytest

from pytest_courier.errors import DSLError, DSLRuntimeError
from pytest_courier.runner import TestRunner
from pytest_courier.settings import CourierSettings

if TYPE_CHECKING:
    from typing import Any

if TYPE_CHECKING:
    from _pytest._code.code import ExceptionInfo, TerminalRepr

if TYPE_CHECKING:
    from pytest_courier.core import DocumentParser, Header, Step
    from pytest_courier.runner import EndpointSource, TestResult
    from pytest_courier.values import Value


class TestPlan:
    """Executable runtime representation of a parsed test case.

    A plan holds one parameter combination of a case. Every run creates
    a new runner, so nothing is shared between runs.
    """

    __test__ = False

    def __init__(self, header: 'Header', steps: tuple['Step', ...],
                 params: dict[str, 'Value'], *,
                 parser: 'DocumentParser',
                 settings: CourierSettings | None = None,
                 name: str = 'test case',
                 filename: str | None = None) -> None:
        """Initialize a test execution plan.

        Args:
            header: Optional case header.
            steps: Ordered top-level steps.
            params: Parameter values of this plan.
            parser: Parser providing validators, endpoint types and functions.
            settings: Session settings, overridden by the header.
            name: Name of the test case.
            filename: Source file of the case, used in error reports.
        """
        if settings is None:
            settings = CourierSettings()

        self.header = header
        self.steps = steps
        self.params = params

        self.parser = parser
        self.settings = settings
        self.name = name
        self.filename = filename

    def build_endpoints(self) -> dict[str, 'EndpointSource']:
        """Build factories of the endpoints declared in the header.

        Raises:
            DSLSchemaError: If an endpoint type is not registered.
        """
        if not self.header:
            return {}

        return {
            definition.name: partial(
                self.parser.get_endpoint_type(definition.endpoint_type).create,
                definition.options,
            )
            for definition in self.header.endpoints
        }

    def build_runner(self) -> TestRunner:
        """Build the runner of this plan.

        Raises:
            DSLSchemaError: If the header references unknown extensions.
            DSLRuntimeError: If environment inputs can not be resolved.
        """
        settings = self.settings
        variables: dict[str, Value] = {'params': self.params}
        validators = None

        if self.header:
            settings = self.header.configure(settings)
            validators = self.header.validators
            try:
                variables = self.header(self.params)
            except DSLRuntimeError as error:
                error.bind(self.header, 'case')
                raise

        return TestRunner(
            self.steps,
            settings=settings,
            endpoints=self.build_endpoints(),
            validators=self.parser.select_validators(validators),
            functions=self.parser.functions,
            variables=variables,
            name=self.name,
        )

    def run(self) -> 'TestResult':
        """Run the plan once and return the outcome."""
        result = self.build_runner().run()

        if self.filename:
            for error in result.errors:
                error.in_file(self.filename)

        return result

    def run_spec(self) -> 'TestResult':
        """Run the plan, raising the terminating error on failure.

        Raises:
            DSLRuntimeError: If the run did not succeed. Failed
                expectations raise `ExpectationFailed`, which is also
                an `AssertionError`.
        """
        result = self.run()
        if result.error is not None:
            raise result.error

        return result


class TestCase(pytest.Item):
    """Pytest item executing a single test case run."""

    __test__ = False

    def __init__(self, *,
                 header: 'Header',
                 steps: tuple['Step', ...],
                 params: dict[str, 'Value'],
                 parser: 'DocumentParser',
                 settings: CourierSettings | None = None,
                 **kwargs: 'Any') -> None:
        """Initialize a pytest test case backed by a test plan.

        Args:
            header: Optional case header.
            steps: Sequence of top-level steps.
            params: Parameter values of this run.
            parser: DSL document parser.
            settings: Session settings.
            **kwargs: Keyword pytest.Item arguments.
        """
        super().__init__(**kwargs)

        self.plan = TestPlan(
            header,
            steps,
            params,
            parser=parser,
            settings=settings,
            name=self.name,
            filename=f'{self.path}',
        )
        self.result: TestResult | None = None

    def runtest(self) -> None:
        """Execute the test case."""
        self.result = self.plan.run()

        if self.result.error is not None:
            raise self.result.error

    def repr_failure(self, excinfo: 'ExceptionInfo[BaseException]',
                     style: 'Any' = None) -> 'str | TerminalRepr':
        """Report the terminating error, the other errors and the log."""
        if not isinstance(excinfo.value, DSLError):
            return super().repr_failure(excinfo, style=style)

        lines = [f'{type(excinfo.value).__name__}: {excinfo.value}']

        if self.result is not None:
            for error in self.result.errors:
                if error is not excinfo.value:
                    lines.append(f'{error.kind}: {error}')

            if self.result.log:
                lines.append('Execution log:')
                lines.extend(f'  {record}' for record in self.result.log)

        return linesep.join(lines)

    def reportinfo(self) -> tuple['Any', int | None, str]:
        """Location of the test case in reports."""
        return self.path, None, self.name
