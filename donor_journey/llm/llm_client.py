"""
Async LLM client for the analysis services, built on LiteLLM.

Each analysis task has a primary model and fallbacks. A call walks that list:
transient failures (rate limits, 5xx, timeouts) move on to the next model,
permanent ones (bad key, rejected request or schema) raise straight away.
Provider keys are read by LiteLLM from the usual environment variables
(OPENAI_API_KEY, ANTHROPIC_API_KEY, GEMINI_API_KEY, AZURE_API_KEY).

Usage:
    from donor_journey.llm.llm_client import LLMTask, get_client_for_task

    client = get_client_for_task(LLMTask.STAGE_CLASSIFICATION)
    text = await client.generate_text(prompt, prompt_version="1.0.0")

    client = get_client_for_task(LLMTask.JOURNEY_GENERATION)
    data = await client.generate_structured_object(prompt, JourneyGraphResponse, system_prompt=rules)
"""

import hashlib
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import litellm
from litellm import acompletion, completion_cost
from pydantic import BaseModel

from ..errors import LLMResponseError
from .response_parser import load_json_object
from .schema_helpers import build_json_schema

litellm.suppress_debug_info = True

logging.getLogger("LiteLLM").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


# =============================================================================
# MODELS
# =============================================================================

MODEL_GPT4O = "gpt-4o"
MODEL_GPT4O_MINI = "gpt-4o-mini"
MODEL_GPT5_MINI = "gpt-5-mini"
MODEL_AZURE_OPENAI = "azure-openai"  # deployment from AZURE_OPENAI_DEPLOYMENT_NAME
MODEL_CLAUDE_SONNET_45 = "claude-sonnet-4-5"
MODEL_CLAUDE_HAIKU_45 = "claude-haiku-4-5"
MODEL_GEMINI_25_FLASH = "gemini-2.5-flash"

# Prices in USD per million tokens, used when LiteLLM cannot price a response
MODEL_REGISTRY: Dict[str, Dict[str, Any]] = {
    MODEL_GPT4O: {"litellm_name": "gpt-4o", "provider": "openai", "input_price": 2.50, "output_price": 10.00},
    MODEL_GPT4O_MINI: {"litellm_name": "gpt-4o-mini", "provider": "openai", "input_price": 0.15, "output_price": 0.60},
    MODEL_GPT5_MINI: {"litellm_name": "gpt-5-mini", "provider": "openai", "input_price": 0.25, "output_price": 2.00},
    MODEL_AZURE_OPENAI: {
        "litellm_name": f"azure/{os.environ.get('AZURE_OPENAI_DEPLOYMENT_NAME', 'gpt-4o')}",
        "provider": "azure",
        "input_price": 2.50,
        "output_price": 10.00,
    },
    MODEL_CLAUDE_SONNET_45: {
        "litellm_name": "anthropic/claude-sonnet-4-5",
        "provider": "anthropic",
        "input_price": 3.00,
        "output_price": 15.00,
    },
    MODEL_CLAUDE_HAIKU_45: {
        "litellm_name": "anthropic/claude-haiku-4-5",
        "provider": "anthropic",
        "input_price": 1.00,
        "output_price": 5.00,
    },
    MODEL_GEMINI_25_FLASH: {
        "litellm_name": "gemini/gemini-2.5-flash",
        "provider": "google",
        "input_price": 0.15,
        "output_price": 0.60,
    },
}


class LLMTask(Enum):
    """Pipeline steps that call an LLM."""

    JOURNEY_GENERATION = "journey_generation"
    STAGE_CLASSIFICATION = "stage_classification"
    STAGE_TRANSITION = "stage_transition"
    ACTION_PREDICTION = "action_prediction"


# task -> (primary, fallbacks)
TASK_MODELS: Dict[LLMTask, Tuple[str, List[str]]] = {
    # Once per organization, structured graph output
    LLMTask.JOURNEY_GENERATION: (MODEL_GPT4O, [MODEL_CLAUDE_SONNET_45]),
    # Once per donor per run
    LLMTask.STAGE_CLASSIFICATION: (MODEL_GPT4O_MINI, [MODEL_GEMINI_25_FLASH]),
    LLMTask.STAGE_TRANSITION: (MODEL_GPT4O_MINI, [MODEL_GEMINI_25_FLASH]),
    LLMTask.ACTION_PREDICTION: (MODEL_GPT4O_MINI, [MODEL_CLAUDE_HAIKU_45]),
}

_PERMANENT_MARKERS = (
    "authentication",
    "api key",
    "unauthorized",
    "401",
    "403",
    "permission denied",
    "invalid request",
    "invalidrequesterror",
    "badrequesterror",
    "validation error",
    "schema",
)
_TRANSIENT_MARKERS = (
    "rate limit",
    "ratelimiterror",
    "too many requests",
    "quota exceeded",
    "429",
    "500",
    "502",
    "503",
    "timeout",
    "connection",
    "overloaded",
    "temporar",
)


def classify_error(error: Exception) -> str:
    """Return "permanent", "transient" or "unexpected" for a failed completion."""
    text = f"{type(error).__name__} {error}".lower()
    if any(marker in text for marker in _PERMANENT_MARKERS):
        return "permanent"
    if any(marker in text for marker in _TRANSIENT_MARKERS):
        return "transient"
    return "unexpected"


def _prompt_hash(prompt: str, system_prompt: Optional[str]) -> str:
    return hashlib.sha256(f"{system_prompt or ''}|||{prompt}".encode()).hexdigest()[:16]


@dataclass
class LLMResponse:
    """Text of one completion plus what it cost and which prompt produced it."""

    text: str
    model: str
    provider: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    finish_reason: Optional[str] = None
    model_version: str = ""
    prompt_version: str = ""
    prompt_hash: str = ""
    timestamp: str = ""
    task: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class LLMClient:
    """
    Task-aware LLM client with model fallback and cost tracking.

    The analysis services only call ``generate_text`` and
    ``generate_structured_object``; tests substitute any object with those two
    coroutines.
    """

    def __init__(self, task: Optional[LLMTask] = None, model: Optional[str] = None, logger=None):
        """
        Args:
            task: Selects the primary model and fallbacks from TASK_MODELS
            model: Force one model with no fallback; must be a MODEL_REGISTRY key
            logger: Optional PipelineLogger for fallback warnings and call costs
        """
        self.task = task
        self.logger = logger
        self.total_cost_usd = 0.0

        if model:
            if model not in MODEL_REGISTRY:
                raise ValueError(f"Unknown model: {model}. Available: {list(MODEL_REGISTRY.keys())}")
            self.model_name, self.fallback_models = model, []
        elif task:
            primary, fallbacks = TASK_MODELS[task]
            self.model_name, self.fallback_models = primary, list(fallbacks)
        else:
            self.model_name, self.fallback_models = MODEL_GPT4O_MINI, [MODEL_GEMINI_25_FLASH]

        if self.logger:
            chain = " -> ".join([self.model_name] + self.fallback_models)
            self.logger.info(f"LLM client for {task.value if task else 'default'}: {chain}")

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        response_model: Optional[type[BaseModel]] = None,
        prompt_version: Optional[str] = None,
    ) -> LLMResponse:
        """
        Run one completion, falling back through the model chain.

        Args:
            prompt: User message
            system_prompt: Optional system message
            temperature: Sampling temperature
            max_tokens: Output cap (ignored for Gemini and gpt-5 models)
            json_mode: Ask the provider for JSON output
            response_model: With json_mode, constrain output to this model's JSON schema
            prompt_version: Version of the prompt file, recorded on the response

        Raises:
            The first permanent error, or the last model's error
        """
        chain = [self.model_name] + self.fallback_models
        prompt_hash = _prompt_hash(prompt, system_prompt)

        for position, model_name in enumerate(chain):
            try:
                response = await self._complete(
                    model_name, prompt, system_prompt, temperature, max_tokens, json_mode, response_model
                )
            except Exception as e:
                kind = classify_error(e)
                if kind == "permanent":
                    if self.logger:
                        self.logger.error(f"{model_name} rejected the request, not falling back: {e}")
                    raise
                if position == len(chain) - 1:
                    raise
                if self.logger:
                    self.logger.warning(
                        f"{kind} error from {model_name} ({type(e).__name__}: {e}), "
                        f"retrying with {chain[position + 1]}"
                    )
                continue

            response.prompt_hash = prompt_hash
            response.prompt_version = prompt_version or ""
            return response

        raise RuntimeError("empty model chain")

    async def _complete(
        self,
        model_name: str,
        prompt: str,
        system_prompt: Optional[str],
        temperature: float,
        max_tokens: Optional[int],
        json_mode: bool,
        response_model: Optional[type[BaseModel]],
    ) -> LLMResponse:
        entry = MODEL_REGISTRY[model_name]

        messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
        messages.append({"role": "user", "content": prompt})

        kwargs: Dict[str, Any] = {
            "model": entry["litellm_name"],
            "messages": messages,
            "temperature": temperature,
            "num_retries": 2,
            "timeout": 120,
            "drop_params": True,
        }
        if max_tokens and entry["provider"] != "google":
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            if response_model is not None:
                # Built per provider: Anthropic needs additionalProperties false on every object
                kwargs["response_format"] = {
                    "type": "json_schema",
                    "json_schema": build_json_schema(response_model, entry["provider"]),
                }
            else:
                kwargs["response_format"] = {"type": "json_object"}
        if model_name.startswith("gpt-5"):
            # gpt-5 accepts only temperature 1.0 and spends output tokens on reasoning
            kwargs["temperature"] = 1.0
            kwargs.pop("max_tokens", None)

        raw = await acompletion(**kwargs)
        if not raw.choices:
            raise RuntimeError(f"{model_name} returned no choices (response id {getattr(raw, 'id', 'unknown')})")

        usage = getattr(raw, "usage", None)
        input_tokens = (getattr(usage, "prompt_tokens", 0) or 0) if usage else 0
        output_tokens = (getattr(usage, "completion_tokens", 0) or 0) if usage else 0
        try:
            cost = completion_cost(completion_response=raw) or 0.0
        except Exception:
            cost = (input_tokens * entry["input_price"] + output_tokens * entry["output_price"]) / 1_000_000
        self.total_cost_usd += cost

        if self.logger:
            self.logger.debug(f"LLM call {model_name}: {input_tokens}->{output_tokens} tokens, ${cost:.6f}")

        return LLMResponse(
            text=raw.choices[0].message.content or "",
            model=model_name,
            provider=entry["provider"],
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
            finish_reason=raw.choices[0].finish_reason,
            model_version=entry["litellm_name"],
            timestamp=datetime.now(timezone.utc).isoformat(),
            task=self.task.value if self.task else None,
            metadata={"raw_response_id": getattr(raw, "id", None)},
        )

    async def generate_text(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        prompt_version: Optional[str] = None,
    ) -> str:
        response = await self.generate(prompt, system_prompt=system_prompt, prompt_version=prompt_version)
        return response.text

    async def generate_structured_object(
        self,
        prompt: str,
        schema: type[BaseModel],
        system_prompt: Optional[str] = None,
        prompt_version: Optional[str] = None,
    ) -> Any:
        """
        Generate JSON constrained to ``schema`` and return it decoded.

        The value is not validated against ``schema``; callers run their own
        structural checks so they can report every problem at once.

        Raises:
            LLMResponseError: If the output holds no decodable JSON object
        """
        response = await self.generate(
            prompt,
            system_prompt=system_prompt,
            json_mode=True,
            response_model=schema,
            prompt_version=prompt_version,
        )
        data = load_json_object(response.text)
        if data is None:
            raise LLMResponseError(f"Structured output for {schema.__name__} is not valid JSON", raw_text=response.text)
        return data


def get_client_for_task(task: LLMTask, model: Optional[str] = None, logger=None) -> LLMClient:
    """Client for ``task``, or for ``model`` alone when one is forced."""
    return LLMClient(task=task, model=model, logger=logger)
