"""Storage predicates over nested property bags.

Search parameters are translated into these values; storage backends either
compile them to their query language or evaluate ``matches`` in process.
Paths address keys in the property bag; list values met along a path are
traversed element-wise, so ``("name", "family")`` reaches every family name of
a Patient's ``name`` array.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Tuple, Union

PropertyPath = Tuple[str, ...]


def resolve_path(properties: Any, path: PropertyPath) -> Iterator[Any]:
    """Yield every value reachable at ``path``, flattening lists on the way."""
    if not path:
        yield properties
        return

    if isinstance(properties, list):
        for item in properties:
            yield from resolve_path(item, path)
        return

    if isinstance(properties, Mapping) and path[0] in properties:
        yield from resolve_path(properties[path[0]], path[1:])


def json_contains(container: Any, candidate: Any) -> bool:
    """JSONB ``@>`` semantics for a single pair of values."""
    if isinstance(candidate, Mapping):
        return isinstance(container, Mapping) and all(
            key in container and json_contains(container[key], value)
            for key, value in candidate.items()
        )
    if isinstance(candidate, list):
        return isinstance(container, list) and all(
            any(json_contains(element, value) for element in container)
            for value in candidate
        )
    return container == candidate


@dataclass(frozen=True)
class Equals:
    """Some value at ``path`` equals ``value``."""

    path: PropertyPath
    value: Any

    def matches(self, properties: Mapping[str, Any]) -> bool:
        """Evaluate against a property bag."""
        for found in resolve_path(properties, self.path):
            if isinstance(found, list):
                if self.value in found:
                    return True
            elif found == self.value:
                return True
        return False


@dataclass(frozen=True)
class Contains:
    """The array at ``path`` holds an element that JSON-contains ``value``."""

    path: PropertyPath
    value: Any

    def matches(self, properties: Mapping[str, Any]) -> bool:
        """Evaluate against a property bag."""
        for found in resolve_path(properties, self.path[:-1]):
            if not isinstance(found, Mapping):
                continue
            array = found.get(self.path[-1])
            if isinstance(array, list) and any(
                json_contains(element, self.value) for element in array
            ):
                return True
        return False


@dataclass(frozen=True)
class ILike:
    """Some string at ``path`` contains ``value``, ignoring case."""

    path: PropertyPath
    value: str

    def matches(self, properties: Mapping[str, Any]) -> bool:
        """Evaluate against a property bag."""
        needle = self.value.casefold()
        for found in resolve_path(properties, self.path):
            candidates = found if isinstance(found, list) else [found]
            for candidate in candidates:
                if isinstance(candidate, str) and needle in candidate.casefold():
                    return True
        return False


@dataclass(frozen=True)
class AnyOf:
    """At least one of the nested predicates holds."""

    predicates: Tuple["StoragePredicate", ...]

    def matches(self, properties: Mapping[str, Any]) -> bool:
        """Evaluate against a property bag."""
        return any(predicate.matches(properties) for predicate in self.predicates)


StoragePredicate = Union[Equals, Contains, ILike, AnyOf]


def matches_all(properties: Mapping[str, Any], predicates: Any) -> bool:
    """Conjunction of ``predicates`` over one property bag."""
    return all(predicate.matches(properties) for predicate in predicates)
