"""Base provider for AI-assisted action item splitting.

All providers share the same algorithm:
    split() → _build_system_prompt() + _build_user_prompt()
            → _call_with_retry() → _call_api()   ← only this differs per provider
            → _parse()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

A provider never decides task identity. It only proposes item texts; when it
fails or answers with something unusable it raises ClassificationAmbiguous
and the synthesizer keeps the unit as a single task.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from reviewtask_core.errors import ClassificationAmbiguous

if TYPE_CHECKING:
    from reviewtask_core.models import NormalizedUnit

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_MAX_TOKENS = 1024
# Replies beyond this many are left out of the prompt.
_MAX_REPLIES_IN_PROMPT = 10


class BaseProvider(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def split(self, unit: NormalizedUnit) -> list[str]:
        """Return the distinct action items requested by a review thread."""
        system = self._build_system_prompt()
        user = self._build_user_prompt(unit)
        raw = self._call_with_retry(system, user)
        if raw is None:
            raise ClassificationAmbiguous(f"{self.__class__.__name__} gave no answer for thread {unit.thread_id}")
        return self._parse(raw)

    # ------------------------------------------------------------------ #
    # Abstract — implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        It should raise on failure — _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str) -> str | None:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(system_prompt, user_prompt)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    return None
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        return None

    def _build_system_prompt(self) -> str:
        return """You turn pull request review threads into a developer's to-do list.

Rules:
- Extract only concrete changes the reviewer asks for.
- One entry per distinct change. Do not merge unrelated requests, do not split one request.
- Write each entry as a short imperative sentence.
- Ignore praise, thanks, and questions that were already answered in the thread.
- If nothing needs to change, return an empty list."""

    def _build_user_prompt(self, unit: NormalizedUnit) -> str:
        location = ""
        if unit.path:
            location = f"`{unit.path}`" + (f" line {unit.line}" if unit.line else "")
        replies = "\n\n".join(f"**{c.author}**: {c.body}" for c in unit.replies[:_MAX_REPLIES_IN_PROMPT])
        return f"""## Review comment by {unit.author}{" on " + location if location else ""}
{unit.body}

## Replies
{replies or "(none)"}

### Output Format:
Respond with **only** a valid JSON list of strings:

["<first action item>", "<second action item>"]

If there is nothing to do, return: []
Do not return any text outside the JSON block."""

    def _parse(self, raw: str) -> list[str]:
        """Parse the model's raw text response into a list of item strings."""
        cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning("%s: failed to parse response as JSON: %s", self.__class__.__name__, raw[:200])
            raise ClassificationAmbiguous("unparseable provider response")
        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            raise ClassificationAmbiguous("provider response is not a list of strings")
        return [item.strip() for item in data if item.strip()]
