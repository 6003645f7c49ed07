"""Pluggable classifiers that decide how many action items a unit holds.

A classifier returns the list of action item texts for one NormalizedUnit:

- ``[]``            the unit only acknowledges (e.g. "LGTM") -> no task;
- ``[body]``        one action point -> one task;
- ``[a, b, ...]``   several distinguishable items -> one task each.

Raising ClassificationAmbiguous is always allowed; the synthesizer answers it
with the conservative one-task-per-unit fallback.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from reviewtask_core.errors import ClassificationAmbiguous
from reviewtask_core.utils.text import is_acknowledgement, strip_code, strip_markup

if TYPE_CHECKING:
    from reviewtask_core.models import NormalizedUnit
    from reviewtask_core.providers.base import BaseProvider

logger = logging.getLogger(__name__)

# Top-level list item: at most three spaces of indent, a bullet or "1." / "1)"
# marker, and an optional task-list checkbox.
_ITEM_RE = re.compile(r"^( {0,3})(?:[-*+]|\d+[.)])\s+(?:\[(?P<check>[ xX])\]\s+)?(?P<text>\S.*)$")


class Classifier(ABC):
    name: str = ""
    # False when the same unit may be split differently from one call to the
    # next; the synthesizer then reuses the split stored for unchanged threads.
    deterministic: bool = True

    @abstractmethod
    def classify(self, unit: NormalizedUnit) -> list[str]:
        """Return the action item texts contained in the unit."""


class ConservativeClassifier(Classifier):
    """One task per unit unless the unit is a pure acknowledgement."""

    name = "conservative"

    def classify(self, unit: NormalizedUnit) -> list[str]:
        if is_acknowledgement(unit.body):
            return []
        return [unit.body]


class StructuredClassifier(ConservativeClassifier):
    """Split itemized lists and unchecked task lists into separate items.

    A body that is not a list stays a single task. A list yields one item per
    open entry, even when only one is left, so that an item keeps its identity
    while its siblings are ticked off or removed. A task list with every entry
    checked yields nothing. Prose that follows a list makes the split
    ambiguous (it may be another request or a closing remark), so that case
    raises ClassificationAmbiguous.
    """

    name = "structured"

    def classify(self, unit: NormalizedUnit) -> list[str]:
        base = super().classify(unit)
        if not base:
            return []
        items = split_items(unit.body)
        return base if items is None else items


def split_items(body: str) -> list[str] | None:
    """Return the open list items in body, or None when it is not an itemized request."""
    text = strip_code(strip_markup(body))
    items: list[list[str]] = []
    checked: list[bool] = []
    base_indent: int | None = None
    for raw_line in text.splitlines():
        line = raw_line.rstrip()
        if not line.strip():
            continue
        match = _ITEM_RE.match(line)
        if match and (base_indent is None or len(match.group(1)) <= base_indent):
            if base_indent is None:
                base_indent = len(match.group(1))
            items.append([match.group("text").strip()])
            checked.append((match.group("check") or " ").lower() == "x")
            continue
        if base_indent is None:
            continue  # lead-in text such as "A few things:"
        if line.startswith((" ", "\t")):
            items[-1].append(line.strip())
            continue
        raise ClassificationAmbiguous(f"prose after list: {line[:40]!r}")

    if not items:
        return None
    return [" ".join(parts) for parts, done in zip(items, checked) if not done]


class LLMClassifier(Classifier):
    """Delegates splitting to an AI provider, after the local acknowledgement filter."""

    deterministic = False

    def __init__(self, provider: BaseProvider, name: str):
        self.provider = provider
        self.name = name

    def classify(self, unit: NormalizedUnit) -> list[str]:
        if is_acknowledgement(unit.body):
            return []
        return self.provider.split(unit)


def _require_key(config: dict, key: str, env_var: str, name: str) -> str:
    api_key = config.get(key)
    if not api_key:
        raise ValueError(f"classifier: {name} needs an API key. Set {env_var}.")
    return api_key


def get_classifier(config: dict) -> Classifier:
    """Instantiate the classifier named by the ``classifier`` config key."""
    name = config.get("classifier", "conservative")
    if name == "conservative":
        return ConservativeClassifier()
    if name == "structured":
        return StructuredClassifier()
    if name == "anthropic":
        from reviewtask_core.providers.anthropic import AnthropicProvider

        api_key = _require_key(config, "anthropic_api_key", "ANTHROPIC_API_KEY", name)
        return LLMClassifier(AnthropicProvider(api_key=api_key), name)
    if name == "openai":
        from reviewtask_core.providers.openai import OpenAIProvider

        api_key = _require_key(config, "openai_api_key", "OPENAI_API_KEY", name)
        return LLMClassifier(OpenAIProvider(api_key=api_key), name)
    raise ValueError(f"Unknown classifier: {name!r}. Choose 'conservative', 'structured', 'anthropic' or 'openai'.")
