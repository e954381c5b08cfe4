#
#  Copyright 2024 The InfiniFlow Authors. All Rights Reserved.
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.
#
import enum
import logging
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1/models/{model}:generateContent"


class GenerationError(Exception):
    """Generation could not produce a post."""


class ProviderError(GenerationError):
    """Gemini answered with an explicit error payload."""


class ParseError(GenerationError):
    pass


class RequestFailed(GenerationError):
    pass


class InvalidOptions(ValueError):
    pass


class PostFormat(str, enum.Enum):
    STORY = "story"
    HOWTO = "howto"
    LIST = "list"
    CONTRARIAN = "contrarian"
    QUESTION = "question"


class PostLength(str, enum.Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class Tone(str, enum.Enum):
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    INSPIRATIONAL = "inspirational"
    HUMOROUS = "humorous"
    BOLD = "bold"
    FRIENDLY = "friendly"
    EDUCATIONAL = "educational"
    STORYTELLING = "storytelling"


FORMAT_INSTRUCTIONS = {
    PostFormat.STORY.value: "Write as a personal story with a hook, tension, and lesson.",
    PostFormat.HOWTO.value: "Write as a step-by-step how-to guide.",
    PostFormat.LIST.value: "Write as a list of tips or insights.",
    PostFormat.CONTRARIAN.value: "Write as a contrarian/unpopular opinion that challenges common beliefs.",
    PostFormat.QUESTION.value: "Write as a thought-provoking question to spark discussion.",
}

LENGTH_RANGES = {
    PostLength.SHORT.value: "100-150 words",
    PostLength.MEDIUM.value: "150-250 words",
    PostLength.LONG.value: "250-400 words",
}

PROMPT_TEMPLATE = """You are a viral LinkedIn content expert. Create an engaging LinkedIn post.

TOPIC: {topic}
FORMAT: {format}
TONE: {tone}
LENGTH: {length}
EMOJIS: {emojis}

RULES:
- Start with a strong hook that stops scrolling
- Short paragraphs (1-2 sentences max)
- Add line breaks for readability
- End with a question or call-to-action
- Be conversational and authentic
- No hashtags unless specifically asked

Generate ONLY the LinkedIn post, nothing else:"""


def _choice(enum_cls, raw, default, field: str, strict: bool):
    if raw is None or raw == "":
        return default
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        if strict:
            allowed = ", ".join(m.value for m in enum_cls)
            raise InvalidOptions(f"Invalid {field} '{raw}'. Allowed: {allowed}") from None
        return default


@dataclass(frozen=True)
class GenerationOptions:
    """
    What the user asked for.

    `format` and `length` are always enum members once built through
    `from_payload`; `tone` is the Tone value in strict mode and whatever the
    client sent otherwise.
    """
    topic: str
    format: PostFormat = PostFormat.STORY
    tone: str = Tone.PROFESSIONAL.value
    length: PostLength = PostLength.MEDIUM
    emojis: bool = False

    @classmethod
    def from_payload(cls, data: dict, strict: bool = True) -> "GenerationOptions":
        topic = str(data.get("topic") or "").strip()
        if strict and not topic:
            raise InvalidOptions("Topic is required")

        fmt = _choice(PostFormat, data.get("format"), PostFormat.STORY, "format", strict)
        length = _choice(PostLength, data.get("length"), PostLength.MEDIUM, "length", strict)

        raw_tone = data.get("tone")
        if strict:
            tone = _choice(Tone, raw_tone, Tone.PROFESSIONAL, "tone", strict).value
        else:
            tone = Tone.PROFESSIONAL.value if raw_tone is None else str(raw_tone)

        return cls(topic=topic, format=fmt, tone=tone, length=length, emojis=bool(data.get("emojis")))


def build_prompt(options: GenerationOptions) -> str:
    fmt = getattr(options.format, "value", options.format)
    length = getattr(options.length, "value", options.length)
    return PROMPT_TEMPLATE.format(
        topic=options.topic,
        format=FORMAT_INSTRUCTIONS.get(fmt, FORMAT_INSTRUCTIONS[PostFormat.STORY.value]),
        tone=options.tone,
        length=LENGTH_RANGES.get(length, LENGTH_RANGES[PostLength.MEDIUM.value]),
        emojis="Use 2-4 relevant emojis" if options.emojis else "No emojis",
    )


class GeminiClient:
    max_output_tokens = 2000
    temperature = 0.8

    def __init__(self, api_key: Optional[str], model: str = "gemini-2.5-flash",
                 timeout: float = 30, session=None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def gen_conf(self) -> dict:
        return {"maxOutputTokens": self.max_output_tokens, "temperature": self.temperature}

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise GenerationError("GEMINI_API_KEY not configured")

        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": self.gen_conf(),
        }
        try:
            resp = self.session.post(
                GEMINI_ENDPOINT.format(model=self.model),
                params={"key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Gemini request failed: %s", exc)
            raise RequestFailed("Request to Gemini failed") from exc

        try:
            parsed = resp.json()
        except ValueError as exc:
            logger.error("Gemini returned non-JSON body (HTTP %s)", resp.status_code)
            raise ParseError("Failed to parse Gemini response") from exc

        if isinstance(parsed, dict) and parsed.get("error"):
            err = parsed["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise ProviderError(message or "Unknown Gemini error")

        try:
            text = parsed["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            logger.error("Unexpected Gemini payload: %.500s", parsed)
            raise ParseError("Failed to parse Gemini response") from exc
        if not isinstance(text, str):
            raise ParseError("Failed to parse Gemini response")
        return text.strip()
