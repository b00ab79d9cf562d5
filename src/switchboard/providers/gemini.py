"""Gemini provider dialect (Generative Language REST API)."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import TYPE_CHECKING, Any

from switchboard._http import JSON_HEADERS
from switchboard.errors import (
    CompletionFailed,
    PromptError,
    TruncatedStream,
    UnsupportedModel,
)
from switchboard.providers._framing import JsonArrayScanner, parse_frame
from switchboard.providers._utils import model_allowed, translate_params
from switchboard.providers.base import (
    PreparedRequest,
    ProviderCapabilities,
    ProviderKind,
)
from switchboard.types import TextFragment, ToolCallPart

if TYPE_CHECKING:
    from switchboard.config import ProviderConfig
    from switchboard.prompt import Prompt, ToolDeclaration
    from switchboard.types import CompletionFragment

logger = logging.getLogger(__name__)

PROVIDER = ProviderKind.GEMINI.value

ALLOWED_MODELS: tuple[str, ...] = ("gemini-pro", "gemini-1.0-pro*", "gemini-1.5-*")

# Generic parameter names → generationConfig keys.
PARAM_ALIASES: Mapping[str, str] = {
    "max_tokens": "maxOutputTokens",
    "top_p": "topP",
    "top_k": "topK",
    "stop_sequences": "stopSequences",
}

_ROLES = {"user": "user", "assistant": "model"}


class GeminiDecoder:
    """Decode ``streamGenerateContent`` bodies: one JSON array, streamed."""

    def __init__(self) -> None:
        self._scanner = JsonArrayScanner()

    @property
    def terminated(self) -> bool:
        """Whether the closing ``]`` has been seen."""
        return self._scanner.terminated

    def feed(self, chunk: str) -> list[Any]:
        """Return the parsed array elements completed by *chunk*."""
        return [parse_frame(e, provider=PROVIDER) for e in self._scanner.feed(chunk)]

    def close(self) -> list[Any]:
        """Check the array was closed; nothing is ever left to flush."""
        if self._scanner.has_partial:
            raise TruncatedStream(
                "gemini stream ended in the middle of a frame",
                provider=PROVIDER,
                phase="decode",
                retryable=True,
            )
        if not self._scanner.terminated:
            raise TruncatedStream(
                "gemini stream ended before the closing ']'",
                provider=PROVIDER,
                phase="decode",
                retryable=True,
            )
        return []


def _first_part(payload: Any) -> dict[str, Any] | None:
    """Return ``candidates[0].content.parts[0]`` or None."""
    if not isinstance(payload, dict):
        return None
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    return parts[0]


def _raise_for_error(payload: Any) -> None:
    """Raise when Gemini reports an error inside a 2xx body or stream."""
    if not isinstance(payload, dict) or not isinstance(payload.get("error"), dict):
        return
    error = payload["error"]
    code = error.get("code")
    raise CompletionFailed(
        f"gemini reported an error: {error.get('message', 'unknown error')}",
        provider=PROVIDER,
        phase="extract",
        status_code=code if isinstance(code, int) else None,
    )


class GeminiDialect:
    """Google Gemini: key in the query string, native ``functionCall`` tools."""

    kind = ProviderKind.GEMINI

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(native_tool_calls=True)

    def can_contact(self, model: str) -> bool:
        """Whether *model* is a supported Gemini model."""
        return model_allowed(model, ALLOWED_MODELS)

    def build_payload(
        self,
        prompt: Prompt,
        tools: tuple[ToolDeclaration, ...],
        config: ProviderConfig,
        params: Mapping[str, Any],
        *,
        streaming: bool,
    ) -> dict[str, Any]:
        """Build a ``generateContent`` request body."""
        _ = streaming
        if not self.can_contact(config.model):
            raise UnsupportedModel(
                f"gemini cannot serve model {config.model!r}",
                hint=f"Supported models: {', '.join(ALLOWED_MODELS)}",
                provider=PROVIDER,
                phase="build",
            )

        contents = [
            {"role": _ROLES[m.role], "parts": [{"text": m.content}]}
            for m in prompt.conversation()
        ]
        if not contents:
            raise PromptError(
                "gemini needs at least one user or assistant message",
                provider=PROVIDER,
                phase="build",
            )

        payload: dict[str, Any] = {"contents": contents}

        system = prompt.system_text()
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        generation_config = translate_params(params, PARAM_ALIASES)
        if generation_config:
            payload["generationConfig"] = generation_config

        if tools:
            payload["tools"] = [
                {"function_declarations": [_function_declaration(t) for t in tools]}
            ]
        return payload

    def prepare_request(
        self, payload: dict[str, Any], config: ProviderConfig, *, streaming: bool
    ) -> PreparedRequest:
        """POST to ``generateContent`` or ``streamGenerateContent``."""
        action = "streamGenerateContent" if streaming else "generateContent"
        base_url = (config.base_url or "").rstrip("/")
        return PreparedRequest(
            method="POST",
            url=f"{base_url}/models/{config.model}:{action}",
            headers=dict(JSON_HEADERS),
            body=json.dumps(payload).encode("utf-8"),
            provider=PROVIDER,
            params={"key": config.api_key or ""},
        )

    def new_decoder(self) -> GeminiDecoder:
        """Return a fresh decoder for one streamed call."""
        return GeminiDecoder()

    def extract(self, frame: Any, *, tool_mode: bool) -> CompletionFragment | None:
        """Extract text or a ``functionCall`` from the first candidate part."""
        _raise_for_error(frame)
        part = _first_part(frame)
        if part is None:
            logger.debug("Skipping gemini frame without candidate content")
            return None

        function_call = part.get("functionCall")
        if isinstance(function_call, dict):
            name = function_call.get("name")
            args = function_call.get("args")
            arguments = tuple(args.items()) if isinstance(args, dict) else ()
            return ToolCallPart(
                name=name if isinstance(name, str) and name else None,
                arguments=arguments,
            )
        if tool_mode:
            # Once a call turned into a tool call, stray text is not content.
            return ToolCallPart()

        text = part.get("text")
        if not isinstance(text, str):
            return None
        return TextFragment(text)

    def extract_full(
        self, body: Any, *, tool_mode: bool
    ) -> CompletionFragment | None:
        """A full ``generateContent`` body has the same shape as one frame."""
        return self.extract(body, tool_mode=tool_mode)


def _function_declaration(tool: ToolDeclaration) -> dict[str, Any]:
    declaration: dict[str, Any] = {"name": tool.name, "description": tool.description}
    if tool.parameters:
        declaration["parameters"] = tool.json_schema()
    return declaration
