"""Document parsing and extension registry.

`DocumentParser` registers the built-in actions, checkers, validators,
endpoint types and functions, loads plugins from the `courier_plugins`
entry-point group and turns multi-document YAML case files into a case
header and a tuple of executable steps.
"""

from .parser import DocumentParser, Header, Step

__all__ = (
    'DocumentParser',
    'Header',
    'Step',
)
