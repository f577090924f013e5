"""Integration-test execution engine with a YAML DSL and pytest integration.

The `pytest_courier` package runs declaratively defined test cases composed
of actions (send a message, receive a message, wait, echo, ...) against
pluggable transport endpoints.

Key features:
- sequential, parallel and asynchronous action containers sharing one
  thread-safe test context;
- `${variable}` and function substitution in message payloads and headers;
- transport-independent correlation of replies with pending receivers;
- pluggable message validators selected by declared message type;
- YAML files collected as pytest items through the `courier` plugin.
"""
