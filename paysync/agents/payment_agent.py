"""PaymentAgent: LLM-backed payment extraction.

This module defines the PaymentAgent class, which asks a chat-completions model (Groq) to
read one email at a time and answer with a JSON payment object. The agent does not decide
whether a payment is good enough to store; it only turns model output into a
``PaymentCandidate`` or ``None``.
"""

import json
from typing import Any

from pydantic import ValidationError

from paysync.agents.base import ExtractionOracle
from paysync.agents.prompts import SYSTEM_PROMPT, USER_PROMPT_LOG_LABEL, USER_PROMPT_TEMPLATE
from paysync.core.errors import ExtractionError
from paysync.core.models import MailMessage, PaymentCandidate
from paysync.core.settings import Settings
from paysync.core.utils import get_logger, truncate

MAX_BODY_CHARS = 20000
MAX_OUTPUT_LOG_LEN = 300

logger = get_logger("paysync.agent")


def _get_color(color: str) -> str:
    try:
        from colorlog.escape_codes import escape_codes as _codes

        return _codes.get(color, "")
    except Exception:
        return ""


def clean_json_response(content: str) -> str:
    """Cut the first ``{`` ... last ``}`` span out of a model reply (drops code fences and chatter)."""
    content = content.strip()
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end == -1 or start > end:
        return content
    return content[start : end + 1].strip()


class PaymentAgent(ExtractionOracle):
    """Agent responsible for LLM-based extraction of payment data from emails."""

    def __init__(self, llm_client: object, settings: Settings) -> None:
        """Initialize the PaymentAgent with an LLM client and settings."""
        self.llm_client = llm_client
        self.settings = settings

    def extract_batch(
        self, messages: list[MailMessage]
    ) -> tuple[list[PaymentCandidate | None], list[dict[str, Any]]]:
        """Extract payments one message at a time; any failure aborts the batch."""
        candidates: list[PaymentCandidate | None] = []
        raw_responses: list[dict[str, Any]] = []
        for idx, message in enumerate(messages):
            candidate, raw = self.extract(message, row_info=f"[AI MSG {idx + 1}/{len(messages)}] ")
            candidates.append(candidate)
            raw_responses.append(raw)
        return candidates, raw_responses

    def extract(self, message: MailMessage, row_info: str = "") -> tuple[PaymentCandidate | None, dict[str, Any]]:
        """Ask the model about one message."""
        yellow = _get_color("yellow")
        green = _get_color("green")
        reset = _get_color("reset")
        logger.info(f"{yellow}{row_info}PROMPT: {USER_PROMPT_LOG_LABEL} (message {message.id}){reset}")
        user_prompt = USER_PROMPT_TEMPLATE.format(
            sender=message.from_address,
            subject=message.subject,
            body=message.body[:MAX_BODY_CHARS],
        )
        system_msg = {"role": "system", "content": SYSTEM_PROMPT}
        user_msg = {"role": "user", "content": user_prompt}
        try:
            completion = self.llm_client.chat.completions.create(
                model=self.settings.llm_model,
                messages=[system_msg, user_msg],
                temperature=self.settings.llm_temperature,
                max_completion_tokens=self.settings.llm_max_completion_tokens,
                top_p=self.settings.llm_top_p,
                stream=self.settings.llm_stream,
            )
        except Exception as exc:
            msg = f"LLM API call failed: {exc}"
            logger.exception(msg)
            raise ExtractionError(msg) from exc
        raw_output = self._collect_llm_output(completion)
        logger.info(f"{green}{row_info}OUTPUT: {truncate(raw_output, MAX_OUTPUT_LOG_LEN)}{reset}")
        raw_response = {"model": self.settings.llm_model, "message_id": message.id, "content": raw_output}
        return self._parse_candidate(raw_output), raw_response

    def _collect_llm_output(self, completion: object) -> str:
        """Collect the full text from a streamed or a plain completion."""
        try:
            if self.settings.llm_stream:
                return "".join(chunk.choices[0].delta.content or "" for chunk in completion)
            return completion.choices[0].message.content or ""
        except Exception as exc:
            msg = f"LLM response error: {exc}"
            logger.exception(msg)
            raise ExtractionError(msg) from exc

    def _parse_candidate(self, raw_output: str) -> PaymentCandidate | None:
        """Parse the JSON object in the reply. All-null answers mean "not a payment"."""
        cleaned = clean_json_response(raw_output)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            msg = f"failed to parse payment JSON: {exc}"
            raise ExtractionError(msg) from exc
        if not isinstance(data, dict):
            msg = f"expected a JSON object, got {type(data).__name__}"
            raise ExtractionError(msg)
        try:
            candidate = PaymentCandidate.model_validate(data)
        except ValidationError as exc:
            msg = f"malformed payment JSON: {exc}"
            raise ExtractionError(msg) from exc
        if candidate.merchant_name is None and candidate.amount is None:
            return None
        return candidate
