"""Series episode classifier backed by an LLM.

Uses Groq's OpenAI-compatible chat completions API. The model answers with a
JSON object whose ``results`` array must line up one-to-one with the
submitted batch; anything that cannot be aligned is rejected as a whole.
"""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from epg_aggregator.exceptions import ClassifierFailure, ClassifierShapeMismatch
from epg_aggregator.services.fetch_types import Classification

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """You identify TV series episodes in a programme guide.
For each numbered programme below decide whether it is an episode of a scripted or reality TV series.
If it is, give the canonical show name and, only when you are confident, the season and episode numbers.

Programmes:
{items}

Answer with a JSON object of the form
{{"results": [{{"index": 0, "isSeries": true, "showName": "Show", "season": 1, "episode": 2}}, ...]}}
with exactly {count} entries, one per programme, in the same order. Use null for unknown season or episode."""


@dataclass
class ClassifierItem:
    title: str
    description: str = ""


@dataclass
class GroqConfig:
    """Configuration for Groq client."""

    api_key: str = ""
    model: str = "llama-3.1-8b-instant"
    timeout: float = 8.0


class GroqClassifier:
    """Async HTTP client classifying programme batches via Groq."""

    BASE_URL = "https://api.groq.com/openai/v1"

    def __init__(
        self,
        config: GroqConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or GroqConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=self.config.timeout,
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def classify(self, items: Sequence[ClassifierItem]) -> list[Classification]:
        """Classify a batch of programmes.

        Args:
            items: Titles with (already truncated) descriptions

        Returns:
            One Classification per input item, in input order

        Raises:
            ClassifierFailure: On transport, HTTP or decoding errors
            ClassifierShapeMismatch: If the answer cannot be aligned with the batch
        """
        if not items:
            return []

        payload = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": build_prompt(items)}],
            "temperature": 0.1,
            "response_format": {"type": "json_object"},
        }

        try:
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
        except httpx.TimeoutException as e:
            raise ClassifierFailure("request timed out") from e
        except httpx.HTTPStatusError as e:
            raise ClassifierFailure(f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ClassifierFailure(f"HTTP error: {e}") from e
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ClassifierFailure(f"unexpected completion payload: {e}") from e

        return parse_classifications(content, len(items))

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


def build_prompt(items: Sequence[ClassifierItem]) -> str:
    lines = []
    for index, item in enumerate(items):
        line = f"{index}. {item.title}"
        if item.description:
            line += f" | {item.description}"
        lines.append(line)
    return PROMPT_TEMPLATE.format(items="\n".join(lines), count=len(items))


def parse_classifications(content: str, expected: int) -> list[Classification]:
    """Validate raw model output and align it with the submitted batch.

    Raises:
        ClassifierFailure: If the content is not JSON
        ClassifierShapeMismatch: On wrong length, wrong entry shape or bad indices
    """
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        text = text[4:] if text.lower().startswith("json") else text

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug("[AI] Raw response: %s", content[:500])
        raise ClassifierFailure(f"response is not JSON: {e}") from e

    if isinstance(data, dict):
        data = data.get("results")
    if not isinstance(data, list):
        raise ClassifierShapeMismatch(expected, "no results array")
    if len(data) != expected:
        raise ClassifierShapeMismatch(expected, f"got {len(data)}")

    entries = [None] * expected
    indexed = all(isinstance(entry, dict) and "index" in entry for entry in data)

    for position, entry in enumerate(data):
        if not isinstance(entry, dict) or not isinstance(entry.get("isSeries"), bool):
            raise ClassifierShapeMismatch(expected, f"entry {position} is malformed")

        slot = position
        if indexed:
            slot = entry["index"]
            if isinstance(slot, bool) or not isinstance(slot, int) or not 0 <= slot < expected:
                raise ClassifierShapeMismatch(expected, f"entry {position} has index {slot!r}")
            if entries[slot] is not None:
                raise ClassifierShapeMismatch(expected, f"duplicate index {slot}")

        show_name = entry.get("showName")
        entries[slot] = Classification(
            is_series=entry["isSeries"],
            show_name=show_name.strip() if isinstance(show_name, str) else "",
            season=_as_positive_int(entry.get("season")),
            episode=_as_positive_int(entry.get("episode")),
        )

    return entries


def _as_positive_int(value) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.isdecimal():
            return None
        try:
            value = int(value)
        except ValueError:
            return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and value > 0:
        return value
    return None
