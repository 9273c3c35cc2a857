"""Activity classification through an OpenAI chat completion."""

from __future__ import annotations

import json
import logging
import math
from numbers import Real
from typing import Any, Optional, Sequence

import openai

from .classifier import find_overlapping_event
from .config import OpenAIConfig
from .errors import EmptyInput, InvalidJson, MissingField, NoResponse, RemoteClassifierError
from .models import ActivityCandidate, ActivityEstimate, Evidence, Sample

logger = logging.getLogger(__name__)

TIMESTAMP_FMT = "%Y-%m-%d %H:%M:%S"

SYSTEM_PROMPT = (
    "あなたはLinuxデスクトップ環境でのユーザーの活動を分析するアシスタントです。"
    "ウィンドウタイトルやカレンダーイベントの情報から、ユーザーが何をしていたかを推定し、"
    "その確度（0.0-1.0の値）を判断してください。"
    "確度が低い場合は候補となる活動のリストも提供してください。"
)

RESPONSE_SHAPE = """\
この情報を元に、以下の形式のJSONで回答してください：
{
  "activity": "推定される活動内容",
  "confidence": 0.0～1.0の値,
  "alternatives": [
    { "activity": "候補1", "confidence": 0.0～1.0の値 },
    { "activity": "候補2", "confidence": 0.0～1.0の値 }
  ]
}
"""


def build_prompt(samples: Sequence[Sample]) -> str:
    lines = [
        "以下のLinuxデスクトップのウィンドウ情報とカレンダーイベントから、"
        "ユーザーの活動内容を推定し、その確度（0.0-1.0）を評価してください。",
        "",
        "### ウィンドウ情報 ###",
        "タイムスタンプ | ウィンドウタイトル | クラス",
    ]
    for sample in samples:
        lines.append(
            f"{sample.timestamp.strftime(TIMESTAMP_FMT)} | {sample.window_title} | "
            f"{sample.window_class or '不明'}"
        )

    if samples and any(sample.calendar_events for sample in samples):
        moment = samples[0].timestamp
        lines += ["", "### カレンダーイベント ###", "タイトル | 開始時間 | 終了時間"]
        seen: set[str] = set()
        for sample in samples:
            for event in sample.calendar_events:
                if event.id in seen or not event.overlaps(moment):
                    continue
                seen.add(event.id)
                lines.append(
                    f"{event.title} | {event.start.strftime(TIMESTAMP_FMT)} | "
                    f"{event.end.strftime(TIMESTAMP_FMT)}"
                )

    return "\n".join(lines) + "\n\n" + RESPONSE_SHAPE


def parse_response(content: str) -> tuple[str, float, list[ActivityCandidate]]:
    """Extract activity, confidence and alternatives from the model output."""
    try:
        parsed = json.loads(content)
    except (TypeError, json.JSONDecodeError) as exc:
        raise InvalidJson(f"Failed to parse classifier response as JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise InvalidJson("Classifier response is not a JSON object")

    activity = parsed.get("activity")
    if not isinstance(activity, str):
        raise MissingField("activity")
    confidence = _as_number(parsed.get("confidence"))
    if confidence is None:
        raise MissingField("confidence")

    alternatives: list[ActivityCandidate] = []
    seen = {activity}
    raw_alternatives = parsed.get("alternatives")
    if isinstance(raw_alternatives, list):
        for item in raw_alternatives:
            if not isinstance(item, dict):
                continue
            alt_activity = item.get("activity")
            alt_confidence = _as_number(item.get("confidence"))
            if not isinstance(alt_activity, str) or alt_confidence is None:
                continue
            if alt_activity in seen:
                continue
            seen.add(alt_activity)
            alternatives.append(ActivityCandidate(alt_activity, alt_confidence))

    return activity, confidence, alternatives


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


class LLMClassifier:
    """Asks a chat model for a structured activity estimate."""

    source = "llm"

    def __init__(
        self,
        client: Any,
        model: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 500,
    ) -> None:
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_config(cls, config: OpenAIConfig) -> "LLMClassifier":
        client = openai.OpenAI(api_key=config.api_key, base_url=config.base_url)
        return cls(client, config.model)

    def classify(self, samples: Sequence[Sample]) -> ActivityEstimate:
        if not samples:
            raise EmptyInput("No samples to classify")

        prompt = build_prompt(samples)
        logger.debug("Classification prompt:\n%s", prompt)
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as exc:
            raise RemoteClassifierError(f"Chat completion request failed: {exc}") from exc

        if not response.choices:
            raise NoResponse("Chat completion returned no choices")
        content = response.choices[0].message.content or ""
        logger.debug("Classifier response: %s", content)

        activity, confidence, alternatives = parse_response(content)
        first = samples[0]
        return ActivityEstimate(
            label=activity,
            confidence=confidence,
            timestamp=first.timestamp,
            alternatives=tuple(alternatives),
            evidence=Evidence(
                window_title=first.window_title,
                calendar_event=find_overlapping_event(samples),
            ),
            source=self.source,
        )
