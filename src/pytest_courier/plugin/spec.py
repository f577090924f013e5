"""Pytest integration for YAML case files.

This module defines a custom pytest file collector that treats YAML
files as executable test cases.

Each collected file is parsed using the preconfigured `DocumentParser`
and converted into one `TestCase` item per parameter combination.
"""

from itertools import product
from typing import TYPE_CHECKING

import pytest

from .case import TestCase

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from pytest_courier.schema import BaseAction, Case
    from pytest_courier.values import Value


class TestSpec(pytest.File):
    """Pytest file collector for case files."""

    __test__ = False

    def collect(self) -> 'Iterable[TestCase]':
        """Collect pytest test cases from a case file.

        Raises:
            DSLSchemaError: If the file is malformed.
        """
        with self.path.open('rt', encoding='utf-8') as content:
            header, steps = self.config.courier_parser.parse_file(content)  # type: ignore[attr-defined]

        yield from self.parametrize(header, steps)

    def parametrize(self, header: 'Case | None',
                    steps: tuple['BaseAction', ...]) -> 'Iterable[TestCase]':
        """Generate one test case per parameter combination.

        Items of parametrized cases are named after their values, for
        example `test_hello[json-1]`.
        """
        for values in self.prepare_params(header):
            yield TestCase.from_parent(
                self,
                name=self.make_name(self.path.stem, values),
                header=header,
                steps=steps,
                params=values,
                parser=self.config.courier_parser,  # type: ignore[attr-defined]
                settings=self.config.courier_settings,  # type: ignore[attr-defined]
            )

    @staticmethod
    def make_name(stem: str, values: dict[str, 'Value']) -> str:
        """Name a run after its parameter values, for example `test_hello[json-1]`."""
        if not values:
            return stem

        return f'{stem}[{'-'.join(str(value) for value in values.values())}]'

    @staticmethod
    def prepare_params(header: 'Case | None') -> 'Iterable[dict[str, Value]]':
        """Prepare combinations of parameter values.

        Yields a single empty combination when the case has no parameters.
        """
        if not header or not header.params:
            yield {}
        else:
            names = tuple(param.name for param in header.params)
            for values in product(*(param.values for param in header.params)):
                yield dict(zip(names, values, strict=True))
