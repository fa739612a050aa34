from __future__ import annotations

from collections.abc import Iterator, Mapping
import json
import logging
from typing import Any

import requests

from clausewatch.config import get_settings
from clausewatch.errors import ConfigurationError, ExtractionError, ExtractionValidationError
from clausewatch.schemas import Scorecard, parse_scorecard, scorecard_json_schema
from clausewatch.services.discovery import DiscoveryResult

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
SCORECARD_TOOL_NAME = "Scorecard"
SCORECARD_TOOL_DESCRIPTION = (
    "Structured risk scorecard analyzing a vendor's legal documents for hidden AI training clauses, "
    "sub-processor risks, and telemetry retention policies."
)

SYSTEM_PROMPT = """You are a senior legal risk analyst specializing in AI governance, data privacy, and vendor risk assessment. Your audience is CISOs and IT procurement leads who need binary, actionable risk signals, not legal opinions or conversational summaries.

## Task

Analyze the provided vendor legal documents (Terms of Service, Privacy Policy, Data Processing Agreement, Sub-processor lists) and extract a structured risk scorecard.

## Categories

### aiTraining
- Does the vendor claim rights to use customer data for model training or improvement?
- Is training opt-in or opt-out, and is it enabled by default?
- Are enterprise/API customers carved out from consumer terms?
- Are input data and output data treated differently?

### subProcessors
- Are third-party AI providers (OpenAI, Google, AWS, Azure, ...) listed as sub-processors?
- Is the sub-processor list disclosed, vague or missing?
- Can new sub-processors be added without prior notice?
- Is customer data sent to third parties for AI processing?

### telemetryRetention
- What telemetry or usage data is collected?
- Are retention periods clearly defined?
- Is telemetry anonymized or pseudonymized?
- Is there a deletion mechanism, and how long does deletion take?
- Is data retained after contract termination?

## Severity

- CRITICAL: training on customer data with no opt-out; undisclosed sub-processors; indefinite retention with no deletion mechanism.
- HIGH: training on by default with opt-out; sub-processors may be added without notice; retention beyond 1 year.
- MEDIUM: opt-in training; disclosed sub-processors that include AI providers; retention between 90 days and 1 year.
- LOW: no training on customer data; sub-processors disclosed with notification; retention under 90 days with clear deletion.
- NONE: explicit guarantees against training; no AI sub-processors; minimal retention with immediate deletion on request.

## Rules

1. Every finding quotes the source document verbatim in `evidence`. If no quote exists, set `detected` to false.
2. Every finding maps to a concrete framework reference (GDPR article, SOC 2 criterion, NIST CSF subcategory).
3. Report 2-4 findings per category, the most material ones only.
4. The overall risk level equals the highest severity found across all categories.
5. The summary is 2-3 sentences for a CISO: state the top risk and whether the vendor is safe for enterprise use."""


def build_user_prompt(vendor: str, combined_text: str) -> str:
    return f'Analyze the following legal documents for vendor "{vendor}" and produce the risk scorecard.\n\n{combined_text}'


class ScorecardExtractor:
    """Structured-extraction service: combined document text in, scorecard payload out."""

    name: str = "base"

    def extract(self, system_instructions: str, vendor_name: str, combined_text: str) -> Mapping[str, Any]:
        raise NotImplementedError

    def stream(self, system_instructions: str, vendor_name: str, combined_text: str) -> Iterator[str]:
        """Progressively accumulated partial JSON. Default: one chunk holding the complete object."""
        yield json.dumps(dict(self.extract(system_instructions, vendor_name, combined_text)))


class AnthropicExtractor(ScorecardExtractor):
    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str | None = None,
        base_url: str | None = None,
        max_tokens: int | None = None,
        request_timeout_seconds: int | None = None,
        session: requests.Session | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.anthropic_api_key
        if not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set. Add it to .env or the environment.")
        self.model = model or settings.anthropic_model
        self.base_url = (base_url or settings.anthropic_base_url).rstrip("/")
        self.max_tokens = max_tokens or settings.extraction_max_tokens
        # Extraction over several long documents is slow; never shorter than two minutes.
        self.request_timeout_seconds = request_timeout_seconds or max(120, settings.request_timeout_seconds)
        self.http = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _payload(self, system_instructions: str, vendor_name: str, combined_text: str, *, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": 0,
            "system": system_instructions,
            "messages": [{"role": "user", "content": build_user_prompt(vendor_name, combined_text)}],
            "tools": [
                {
                    "name": SCORECARD_TOOL_NAME,
                    "description": SCORECARD_TOOL_DESCRIPTION,
                    "input_schema": scorecard_json_schema(),
                }
            ],
            "tool_choice": {"type": "tool", "name": SCORECARD_TOOL_NAME},
        }
        if stream:
            payload["stream"] = True
        return payload

    def _post(self, payload: dict[str, Any], *, stream: bool) -> requests.Response:
        try:
            res = self.http.post(
                f"{self.base_url}/v1/messages",
                json=payload,
                headers=self._headers(),
                timeout=self.request_timeout_seconds,
                stream=stream,
            )
        except requests.RequestException as exc:
            raise ExtractionError(f"Extraction request failed: {exc.__class__.__name__}: {exc}") from exc
        if res.status_code >= 400:
            logger.warning("Extraction request failed: status=%s body=%s", res.status_code, res.text[:400])
            raise ExtractionError(f"Extraction request failed: status={res.status_code}")
        return res

    def extract(self, system_instructions: str, vendor_name: str, combined_text: str) -> Mapping[str, Any]:
        res = self._post(self._payload(system_instructions, vendor_name, combined_text, stream=False), stream=False)
        try:
            body = res.json()
        except ValueError as exc:
            raise ExtractionError("Extraction response was not JSON") from exc
        if not isinstance(body, dict):
            raise ExtractionError("Extraction response was not a JSON object")
        for block in body.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "tool_use" and block.get("name") == SCORECARD_TOOL_NAME:
                tool_input = block.get("input")
                if not isinstance(tool_input, dict):
                    raise ExtractionValidationError("Scorecard tool input is not an object")
                return tool_input
        raise ExtractionValidationError(
            f"Extraction response contained no {SCORECARD_TOOL_NAME} tool call (stop_reason={body.get('stop_reason')})"
        )

    def stream(self, system_instructions: str, vendor_name: str, combined_text: str) -> Iterator[str]:
        res = self._post(self._payload(system_instructions, vendor_name, combined_text, stream=True), stream=True)
        partial = ""
        with res:
            for raw in res.iter_lines(decode_unicode=True):
                if not raw or not raw.startswith("data:"):
                    continue
                try:
                    event = json.loads(raw[len("data:") :].strip())
                except ValueError:
                    continue
                kind = event.get("type")
                if kind == "error":
                    message = (event.get("error") or {}).get("message", "stream error")
                    raise ExtractionError(f"Extraction stream failed: {message}")
                if kind == "message_stop":
                    break
                if kind != "content_block_delta":
                    continue
                delta = event.get("delta") or {}
                if delta.get("type") == "input_json_delta" and delta.get("partial_json"):
                    partial += delta["partial_json"]
                    yield partial


def extract_scorecard(extractor: ScorecardExtractor, discovery: DiscoveryResult) -> Scorecard:
    """One-shot extraction for a discovery run, validated before anything else sees it."""
    payload = extractor.extract(SYSTEM_PROMPT, discovery.vendor_hostname, discovery.combined_text)
    return parse_scorecard(payload)


def stream_scorecard(extractor: ScorecardExtractor, discovery: DiscoveryResult) -> Iterator[str]:
    """
    Yield the accumulated scorecard JSON text as it grows.

    Once the stream ends the completed text must validate as a scorecard, otherwise
    ExtractionValidationError is raised after the last partial has been yielded.
    """
    last = None
    for partial in extractor.stream(SYSTEM_PROMPT, discovery.vendor_hostname, discovery.combined_text):
        last = partial
        yield partial
    if last is None:
        raise ExtractionValidationError("Extraction stream produced no scorecard")
    parse_scorecard(last)


def default_extractor() -> ScorecardExtractor:
    return AnthropicExtractor()
