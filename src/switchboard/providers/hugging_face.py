"""Hugging Face text-generation dialect (TGI / Inference Endpoints)."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import TYPE_CHECKING, Any

from switchboard._http import JSON_HEADERS
from switchboard.config import DEFAULT_TOKEN_LIMIT
from switchboard.errors import (
    CompletionFailed,
    MalformedFrame,
    PromptError,
    TruncatedStream,
    UnsupportedModel,
)
from switchboard.markup import render_tool_instructions
from switchboard.providers._framing import LineBuffer, parse_frame
from switchboard.providers._templates import template_for
from switchboard.providers._utils import merge_params, model_allowed, translate_params
from switchboard.providers.base import (
    PreparedRequest,
    ProviderCapabilities,
    ProviderKind,
)
from switchboard.tokens import estimate_tokens
from switchboard.types import TextFragment

if TYPE_CHECKING:
    from switchboard.config import ProviderConfig
    from switchboard.prompt import Prompt, ToolDeclaration
    from switchboard.types import CompletionFragment

logger = logging.getLogger(__name__)

PROVIDER = ProviderKind.HUGGING_FACE.value

ALLOWED_MODELS: tuple[str, ...] = (
    "StableBeluga2",
    "Upstage-Llama-2-*-instruct-v2",
    "Llama2-*-chat-hf",
    "Llama2-chat-hf",
    "mistralai/Mixtral-8x7B-Instruct-v0.1",
    "mistralai/Mistral-7B-Instruct-v0.2",
)

DEFAULT_PARAMETERS: Mapping[str, Any] = {
    "repetition_penalty": 1.1,
    "temperature": 0.7,
    "return_full_text": False,
}

PARAM_ALIASES: Mapping[str, str] = {
    "max_tokens": "max_new_tokens",
    "stop_sequences": "stop",
}

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class HuggingFaceDecoder:
    """Decode server-sent ``data:`` lines ending with a ``[DONE]`` sentinel."""

    def __init__(self) -> None:
        self._lines = LineBuffer()
        self._terminated = False

    @property
    def terminated(self) -> bool:
        """Whether ``[DONE]`` or the final ``generated_text`` frame was seen."""
        return self._terminated

    def feed(self, chunk: str) -> list[Any]:
        """Return the content frames completed by *chunk*."""
        return self._frames(self._lines.feed(chunk))

    def close(self) -> list[Any]:
        """Flush a final unterminated line and check the stream finished."""
        tail = self._lines.flush()
        frames = self._frames([tail]) if tail is not None else []
        if not self._terminated:
            raise TruncatedStream(
                "hugging_face stream ended before [DONE]",
                provider=PROVIDER,
                phase="decode",
                retryable=True,
            )
        return frames

    def _frames(self, lines: list[str]) -> list[Any]:
        frames: list[Any] = []
        for line in lines:
            if self._terminated:
                break
            stripped = line.strip()
            if not stripped.startswith(DATA_PREFIX):
                # SSE comments, event names and keep-alives carry no content.
                continue
            data = stripped[len(DATA_PREFIX) :].strip()
            if not data:
                continue
            if data == DONE_SENTINEL:
                self._terminated = True
                continue

            frame = parse_frame(data, provider=PROVIDER)
            if isinstance(frame, dict):
                if frame.get("generated_text") is not None:
                    # TGI's last frame repeats the full text; its token is still new.
                    self._terminated = True
                token = frame.get("token")
                if isinstance(token, dict) and token.get("special"):
                    continue
            frames.append(frame)
        return frames


def _raise_for_error(payload: Any) -> None:
    """Raise when the server reports an error in a 2xx body or stream."""
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        raise CompletionFailed(
            f"hugging_face reported an error: {payload['error']}",
            provider=PROVIDER,
            phase="extract",
        )


class HuggingFaceDialect:
    """Text generation inference: bearer auth, prompt rendered via a chat template."""

    kind = ProviderKind.HUGGING_FACE

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(native_tool_calls=False, markup_tool_calls=True)

    def can_contact(self, model: str) -> bool:
        """Whether *model* is a supported Hugging Face model."""
        return model_allowed(model, ALLOWED_MODELS)

    def render_inputs(
        self, prompt: Prompt, tools: tuple[ToolDeclaration, ...], model: str
    ) -> str:
        """Render the prompt (and tool instructions) with the model's template."""
        system = prompt.system_text()
        if tools:
            instructions = render_tool_instructions(tools)
            system = f"{system}\n\n{instructions}" if system else instructions
        return template_for(model)(system, prompt.conversation())

    def build_payload(
        self,
        prompt: Prompt,
        tools: tuple[ToolDeclaration, ...],
        config: ProviderConfig,
        params: Mapping[str, Any],
        *,
        streaming: bool,
    ) -> dict[str, Any]:
        """Build an ``inputs``/``parameters`` request body."""
        if not self.can_contact(config.model):
            raise UnsupportedModel(
                f"hugging_face cannot serve model {config.model!r}",
                hint=f"Supported models: {', '.join(ALLOWED_MODELS)}",
                provider=PROVIDER,
                phase="build",
            )

        inputs = self.render_inputs(prompt, tools, config.model)
        overrides = translate_params(params, PARAM_ALIASES)

        if "max_new_tokens" not in overrides:
            token_limit = config.token_limit or DEFAULT_TOKEN_LIMIT
            budget = token_limit - estimate_tokens(inputs)
            if budget < 1:
                raise PromptError(
                    f"Prompt does not fit the {token_limit}-token context window",
                    hint="Shorten the prompt or raise token_limit.",
                    provider=PROVIDER,
                    phase="build",
                )
            overrides = {"max_new_tokens": budget, **overrides}

        payload: dict[str, Any] = {
            "inputs": inputs,
            "parameters": merge_params(DEFAULT_PARAMETERS, overrides),
        }
        if streaming:
            payload["stream"] = True
        return payload

    def prepare_request(
        self, payload: dict[str, Any], config: ProviderConfig, *, streaming: bool
    ) -> PreparedRequest:
        """POST to the configured inference URL with optional bearer auth."""
        _ = streaming
        headers = dict(JSON_HEADERS)
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        return PreparedRequest(
            method="POST",
            url=config.base_url or "",
            headers=headers,
            body=json.dumps(payload).encode("utf-8"),
            provider=PROVIDER,
        )

    def new_decoder(self) -> HuggingFaceDecoder:
        """Return a fresh decoder for one streamed call."""
        return HuggingFaceDecoder()

    def extract(self, frame: Any, *, tool_mode: bool) -> CompletionFragment | None:
        """Extract ``token.text``; special tokens carry no content."""
        _ = tool_mode
        _raise_for_error(frame)
        if not isinstance(frame, dict):
            return None
        token = frame.get("token")
        if not isinstance(token, dict) or token.get("special"):
            return None
        text = token.get("text")
        if not text:
            return None
        return TextFragment(str(text))

    def extract_full(
        self, body: Any, *, tool_mode: bool
    ) -> CompletionFragment | None:
        """Extract ``generated_text`` from a single-element array body."""
        _ = tool_mode
        _raise_for_error(body)
        first = body[0] if isinstance(body, list) and body else body
        if not isinstance(first, dict) or "generated_text" not in first:
            logger.debug("Unexpected hugging_face response shape: %r", type(body))
            raise MalformedFrame(
                "hugging_face response has no generated_text",
                provider=PROVIDER,
                phase="extract",
            )
        return TextFragment(str(first.get("generated_text") or ""))
