"""
GPT request dispatcher.

Builds chat-completion requests within the model's token budget, issues
them through the OpenAI-compatible proxy and records a usage event for
every completed request made with caller context.
"""

import os
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog
from openai import OpenAI

from ..config.loader import (
    OPENAI_API_KEY_ENV,
    PORTKEY_API_KEY_ENV,
    DispatchConfig,
)
from ..core.pricing import ModelRegistry, calculate_cost
from ..core.schema import as_schema
from ..core.token_counter import TokenCounter, TokenUsage, count_tokens, get_max_tokens_for_response
from ..storage.models import PromptRecord, UsageEvent
from ..storage.repository import EventStore, SQLiteEventStore
from .extractor import ExtractionError, MaxRetriesExceededError, extract_validated
from .retry import call_with_backoff
from .vision import build_image_prompt

logger = structlog.get_logger(__name__)

Message = Dict[str, Any]


def create_openai_client(config: DispatchConfig) -> OpenAI:
    """Create the OpenAI client, routed through the proxy when one is configured."""
    if not config.base_url:
        return OpenAI(api_key=os.environ.get(OPENAI_API_KEY_ENV))

    headers = {
        "x-portkey-mode": config.proxy.mode,
        "x-portkey-cache": config.proxy.cache,
        "x-portkey-retry-count": str(config.proxy.retry_count),
    }
    portkey_key = os.environ.get(PORTKEY_API_KEY_ENV)
    if portkey_key:
        headers["x-portkey-api-key"] = portkey_key

    return OpenAI(
        api_key=os.environ.get(OPENAI_API_KEY_ENV),
        base_url=config.base_url,
        default_headers=headers,
    )


def build_messages(
    user_prompt: str,
    system_prompt: str,
    image_prompt: Optional[Message] = None,
) -> List[Message]:
    """Order request messages: image block first if present, then system, then user."""
    messages: List[Message] = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
    if image_prompt:
        messages.insert(0, image_prompt)
    return messages


def _token_usage(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", None) or 0,
        completion_tokens=getattr(usage, "completion_tokens", None) or 0,
    )


def _first_choice_content(response: Any) -> Optional[str]:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None)


class GPTDispatcher:
    """Sends GPT requests and records their usage.

    Each call is independent: messages, token budget and usage event are
    local to the call, so one dispatcher can be shared between callers.
    """

    def __init__(
        self,
        config: Optional[DispatchConfig] = None,
        registry: Optional[ModelRegistry] = None,
        client: Optional[Any] = None,
        event_store: Optional[EventStore] = None,
        token_counter: TokenCounter = count_tokens,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the dispatcher.

        Args:
            config: Dispatcher settings (defaults to DispatchConfig())
            registry: Model profiles (defaults to the registry built from config)
            client: OpenAI-compatible client (defaults to one built from config)
            event_store: Destination for usage events (defaults to a SQLite
                store at config.db_path, created on first use)
            token_counter: Token estimator used for the response budget
            sleep: Blocking sleep used between rate-limit retries
        """
        self.config = config or DispatchConfig()
        self.registry = registry or self.config.build_registry()
        self.client = client if client is not None else create_openai_client(self.config)
        self._event_store = event_store
        self.token_counter = token_counter
        self.sleep = sleep

    @property
    def event_store(self) -> EventStore:
        if self._event_store is None:
            self._event_store = SQLiteEventStore(self.config.db_path)
        return self._event_store

    def send_request(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        event_context: Optional[Mapping[str, Any]] = None,
        image_prompt: Optional[Message] = None,
        model: Optional[str] = None,
    ) -> Optional[str]:
        """Issue a single chat completion.

        Args:
            user_prompt: User message text
            system_prompt: System message text (defaults to config.system_prompt)
            temperature: Sampling temperature (defaults to config.temperature)
            event_context: Caller metadata; when given, a usage event is recorded
            image_prompt: Optional image message placed before the others
            model: Model name (defaults to config.default_model)

        Returns:
            Content of the first choice, or None if the provider returned none

        Raises:
            ValueError: If the model is not supported (before any request)
            OpenAI API errors: Propagated without modification
            Event store errors: Propagated without modification
        """
        if system_prompt is None:
            system_prompt = self.config.system_prompt
        if temperature is None:
            temperature = self.config.temperature
        model = model or self.config.default_model

        profile = self.registry.get_profile(model)
        max_tokens = get_max_tokens_for_response(
            user_prompt + system_prompt, profile, self.token_counter
        )
        messages = build_messages(user_prompt, system_prompt, image_prompt)

        logger.info(
            "gpt_request_start",
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            message_count=len(messages),
        )
        logger.debug("gpt_request_prompts", system_prompt=system_prompt, user_prompt=user_prompt)

        start = time.monotonic()
        response = self.client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        duration_ms = int(round((time.monotonic() - start) * 1000))

        content = _first_choice_content(response)
        usage = _token_usage(response)
        cost = calculate_cost(profile, usage)

        logger.info(
            "gpt_request_complete",
            model=model,
            duration_ms=duration_ms,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            cost=cost,
        )

        if event_context is not None:
            timestamp = datetime.now()
            stamp = timestamp.isoformat()
            event = UsageEvent(
                timestamp=timestamp,
                duration_ms=duration_ms,
                model=model,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                cost=cost,
                prompts=tuple(PromptRecord.from_message(m, stamp) for m in messages),
                response=PromptRecord("Assistant", content or "", stamp),
                context=dict(event_context),
            )
            self.event_store.insert(event.to_record())

        return content

    def send_request_with_retry(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        event_context: Optional[Mapping[str, Any]] = None,
        retries: Optional[int] = None,
        delay_ms: Optional[int] = None,
        image_prompt: Optional[Message] = None,
        model: Optional[str] = None,
    ) -> Optional[str]:
        """send_request, retried with exponential backoff on rate limits.

        Image prompt and model are kept for every attempt. Other errors are
        never retried.
        """
        return call_with_backoff(
            lambda: self.send_request(
                user_prompt,
                system_prompt=system_prompt,
                temperature=temperature,
                event_context=event_context,
                image_prompt=image_prompt,
                model=model,
            ),
            retries=self.config.retries if retries is None else retries,
            delay_ms=self.config.initial_delay_ms if delay_ms is None else delay_ms,
            sleep=self.sleep,
        )

    def send_request_with_schema(
        self,
        user_prompt: str,
        system_prompt: Optional[str],
        schema: Any,
        max_retries: Optional[int] = None,
        temperature: Optional[float] = None,
        event_context: Optional[Mapping[str, Any]] = None,
        model: Optional[str] = None,
    ) -> Any:
        """Request structured data and validate it against schema.

        Each attempt is a fresh send_request call without rate-limit retry.
        Empty, unparseable or invalid replies consume an attempt and are
        retried immediately; transport errors propagate.

        Args:
            user_prompt: User message text
            system_prompt: System message text
            schema: Object exposing safe_parse(), or a pydantic model/type
            max_retries: Attempt budget (defaults to config.schema_max_retries)
            temperature: Sampling temperature
            event_context: Caller metadata for usage events
            model: Model name

        Returns:
            Validated data; for a list reply, the list of validated elements

        Raises:
            MaxRetriesExceededError: If no attempt produced valid data
        """
        validator = as_schema(schema)
        if max_retries is None:
            max_retries = self.config.schema_max_retries

        attempts = 0
        last_error: Optional[Exception] = None
        while attempts < max_retries:
            attempts += 1
            reply = self.send_request(
                user_prompt,
                system_prompt=system_prompt,
                temperature=temperature,
                event_context=event_context,
                model=model,
            )
            try:
                return extract_validated(reply, validator)
            except ExtractionError as e:
                last_error = e
                logger.warning(
                    "gpt_schema_attempt_failed",
                    attempt=attempts,
                    max_retries=max_retries,
                    error=str(e),
                )

        raise MaxRetriesExceededError(user_prompt, attempts, last_error)

    def send_vision_request(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        image_url: Optional[str] = None,
        temperature: Optional[float] = None,
        event_context: Optional[Mapping[str, Any]] = None,
        retries: Optional[int] = None,
        delay_ms: Optional[int] = None,
    ) -> Optional[str]:
        """Send a request with an optional image, using the vision model when one is given."""
        model = self.config.default_model
        image_prompt = None
        if image_url:
            model = self.config.vision_model
            image_prompt = build_image_prompt(image_url)

        return self.send_request_with_retry(
            user_prompt,
            system_prompt=system_prompt,
            temperature=temperature,
            event_context=event_context,
            retries=retries,
            delay_ms=delay_ms,
            image_prompt=image_prompt,
            model=model,
        )
