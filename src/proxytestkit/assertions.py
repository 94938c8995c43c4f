"""Named response assertions.

Predicates are registered once, at import or test-session setup, into an
``AssertionRegistry``. An ``Expect`` handle freezes the registry it reads and
exposes every predicate as a method::

    expect = Expect()
    body = expect.res_status(200, res)
    data = expect.jsonbody(res)
    expect.not_.header("X-Cache", res)

A predicate receives ``(state, args)`` and returns ``(passed, extra)``. When
the assertion fails, ``extra`` fills the ``%s`` slots of the message
template; when it passes, ``extra`` is handed back to the caller. A negated
assertion that unexpectedly passes fills its template from the call-site
arguments.
"""

from __future__ import annotations

import json
import logging
import pprint
from collections.abc import Callable
from collections.abc import Iterator
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from .errors import RegistryFrozenError
from .errors import ReservedAssertionName
from .errors import UnknownAssertion
from .headers import lookup

logger = logging.getLogger("proxytestkit.assertions")


@dataclass(frozen=True)
class AssertionState:
    name: str
    negated: bool = False


Evaluate = Callable[[AssertionState, list[Any]], tuple[bool, Sequence[Any]]]

# attributes of Expect; a predicate under one of these names is unreachable
RESERVED_NAMES = frozenset({"run", "not_"})


@dataclass(frozen=True)
class Predicate:
    name: str
    evaluate: Evaluate
    negative_template: str
    positive_template: str

    def message(self, negated: bool, values: Sequence[Any]) -> str:
        template = self.positive_template if negated else self.negative_template
        return render(template, values)


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return pprint.pformat(value)


def render(template: str, values: Sequence[Any]) -> str:
    slots = template.count("%s")
    padded = list(values[:slots]) + [None] * (slots - len(values))
    return template % tuple(_format_value(v) for v in padded)


class AssertionRegistry(Mapping[str, Predicate]):
    """Name to predicate mapping, writable until frozen."""

    def __init__(self) -> None:
        self._entries: dict[str, Predicate] = {}
        self._frozen = False

    def register(
        self,
        name: str,
        evaluate: Evaluate,
        negative_template: str,
        positive_template: str | None = None,
    ) -> Predicate:
        if self._frozen:
            raise RegistryFrozenError(name)
        if name.startswith("_") or name in RESERVED_NAMES:
            raise ReservedAssertionName(name)
        predicate = Predicate(
            name=name,
            evaluate=evaluate,
            negative_template=negative_template,
            positive_template=positive_template or negative_template,
        )
        self._entries[name] = predicate
        logger.debug("registered assertion %s", name)
        return predicate

    def freeze(self) -> Mapping[str, Predicate]:
        self._frozen = True
        return MappingProxyType(self._entries)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __getitem__(self, name: str) -> Predicate:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def fail(state: AssertionState, args: list[Any]) -> tuple[bool, Sequence[Any]]:
    return False, [" ".join(str(a) for a in args)]


def contains(state: AssertionState, args: list[Any]) -> tuple[bool, Sequence[Any]]:
    expected, sequence = args[0], args[1]
    for element in sequence:
        if element == expected:
            return True, [expected]
    return False, [expected]


def res_status(state: AssertionState, args: list[Any]) -> tuple[bool, Sequence[Any]]:
    expected, res = args[0], args[1] if len(args) > 1 else None
    if res is None:
        return False, [expected, "no response", ""]

    body, err = res.read_body()
    if expected != res.status:
        if body is None:
            body = f"Error reading body: {err}"
        return False, [expected, res.status, body]
    return True, [(body or "").strip()]


def jsonbody(state: AssertionState, args: list[Any]) -> tuple[bool, Sequence[Any]]:
    res = args[0] if args else None
    if not callable(getattr(res, "read_body", None)):
        return False, ["< input is not a valid response object >"]

    body, err = res.read_body()
    if body is None:
        return False, [f"Error decoding: {err}\nBody:{body}"]
    try:
        return True, [json.loads(body)]
    except ValueError as e:
        return False, [f"Error decoding: {e}\nBody:{body}"]


def _headers_of(res: Any) -> Mapping[str, Any] | None:
    if isinstance(res, Mapping):
        headers = res.get("headers")
    else:
        headers = getattr(res, "headers", None)
    return headers if isinstance(headers, Mapping) else None


def header(state: AssertionState, args: list[Any]) -> tuple[bool, Sequence[Any]]:
    """Look up a header on a response or on a decoded echo body.

    The input may be a ``Response`` or a JSON object with a ``headers``
    member, as returned by request-echo endpoints.
    """
    name, res = args[0], args[1] if len(args) > 1 else None
    headers = _headers_of(res)
    if headers is None:
        return False, [name, "<< assertion input does not contain a 'headers' subtable >>"]

    value, _ = lookup(headers, name)
    if value is None:
        return False, [name, dict(headers)]
    return True, [value]


REGISTRY = AssertionRegistry()

REGISTRY.register("fail", fail, "%s", "%s")
REGISTRY.register(
    "contains",
    contains,
    "Expected array to contain element.\nExpected to contain:\n%s\n",
    "Expected array to not contain element.\nExpected to not contain:\n%s\n",
)
REGISTRY.register(
    "res_status",
    res_status,
    "Invalid response status code.\nStatus expected:\n%s\nStatus received:\n%s\nBody:\n%s\n",
)
REGISTRY.register(
    "jsonbody",
    jsonbody,
    "Expected response body to contain valid json. Got:\n%s\n",
    "Expected response body to not contain valid json. Got:\n%s\n",
)
REGISTRY.register(
    "header",
    header,
    "Expected header:\n%s\nBut it was not found in:\n%s\n",
    "Did not expect header:\n%s\nBut it was found in:\n%s\n",
)


class Expect:
    """Read-only handle that runs registered predicates as assertions."""

    def __init__(self, registry: AssertionRegistry | None = None, negated: bool = False):
        self._registry = registry if registry is not None else REGISTRY
        self._predicates = self._registry.freeze()
        self._negated = negated

    @property
    def not_(self) -> Expect:
        return Expect(self._registry, negated=not self._negated)

    def run(self, name: str, *args: Any) -> Any:
        try:
            predicate = self._predicates[name]
        except KeyError:
            raise UnknownAssertion(name) from None

        state = AssertionState(name=name, negated=self._negated)
        passed, extra = predicate.evaluate(state, list(args))
        if self._negated:
            if passed:
                raise AssertionError(predicate.message(True, args))
            return None
        if not passed:
            raise AssertionError(predicate.message(False, extra))

        if not extra:
            return None
        if len(extra) == 1:
            return extra[0]
        return tuple(extra)

    def __getattr__(self, name: str) -> Callable[..., Any]:
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._predicates:
            raise UnknownAssertion(name)

        def assertion(*args: Any) -> Any:
            return self.run(name, *args)

        assertion.__name__ = name
        return assertion
