"""In-memory policy set fed by loads and read by saves."""
from typing import Dict, Iterator, List, Protocol, Sequence, Tuple

from policy_adapter.services.codec import parse_line

SAVED_SECTIONS = ("p", "g")


class PolicySink(Protocol):
    """Anything a load can feed rules into."""

    def add_policy(self, sec: str, ptype: str, rule: List[str]) -> None:
        ...


class PolicySource(Protocol):
    """Anything a full save can read rules from."""

    def iter_rules(self) -> Iterator[Tuple[str, List[str]]]:
        ...


class PolicyModel:
    """Policy rules grouped as ``sec -> ptype -> [rule, ...]``.

    Duplicate rules are ignored, matching how an enforcer model treats
    repeated lines.
    """

    def __init__(self):
        self._policy: Dict[str, Dict[str, List[List[str]]]] = {}

    def add_policy(self, sec: str, ptype: str, rule: List[str]) -> None:
        rules = self._policy.setdefault(sec, {}).setdefault(ptype, [])
        if list(rule) not in rules:
            rules.append(list(rule))

    def remove_policy(self, sec: str, ptype: str, rule: List[str]) -> bool:
        rules = self._policy.get(sec, {}).get(ptype, [])
        if list(rule) in rules:
            rules.remove(list(rule))
            return True
        return False

    def has_policy(self, sec: str, ptype: str, rule: Sequence[str]) -> bool:
        return list(rule) in self._policy.get(sec, {}).get(ptype, [])

    def get_policy(self, sec: str, ptype: str) -> List[List[str]]:
        return [list(rule) for rule in self._policy.get(sec, {}).get(ptype, [])]

    def clear_policy(self) -> None:
        self._policy.clear()

    def iter_rules(self) -> Iterator[Tuple[str, List[str]]]:
        """Yield ``(ptype, rule)`` for every rule in the ``p`` and ``g`` sections."""
        for sec in SAVED_SECTIONS:
            for ptype, rules in self._policy.get(sec, {}).items():
                for rule in rules:
                    yield ptype, list(rule)

    def __len__(self) -> int:
        return sum(len(rules) for ptypes in self._policy.values() for rules in ptypes.values())


def load_policy_rule(ptype: str, rule: List[str], model: PolicySink) -> None:
    """Feed one decoded rule into ``model`` under the section named by its type."""
    model.add_policy(ptype[:1], ptype, rule)


def load_policy_line(line: str, model: PolicySink) -> None:
    """Parse a ``"p, alice, data1, read"`` line and feed it into ``model``.

    Blank lines and ``#`` comments are skipped.
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return
    ptype, rule = parse_line(line)
    load_policy_rule(ptype, rule, model)
