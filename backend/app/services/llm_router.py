# app/services/llm_router.py
"""
LLM Router Service
==================
Routes ranking prompts to a configured provider, falling back across
providers. Raises LLMRouterError when none answers; callers own the
non-LLM fallback.
"""

from typing import Dict, Any, Optional, List, Literal
import logging
from datetime import datetime

from tenacity import retry, stop_after_attempt, wait_exponential
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Type definitions
TaskType = Literal[
    'personalized_ranking',
    'similarity_ranking',
]


class LLMRouterError(Exception):
    """Base exception for LLM Router errors."""
    pass


class ProviderError(LLMRouterError):
    """Raised when a provider fails after retries."""
    pass


class LLMRouter:
    """
    Selects the model for each ranking task and walks its fallback chain.

    Providers without an API key are skipped rather than attempted.
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.anthropic_key = settings.ANTHROPIC_API_KEY
        self.openai_key = settings.OPENAI_API_KEY

        # Lazy client initialization
        self._anthropic_client: Optional[AsyncAnthropic] = None
        self._openai_client: Optional[AsyncOpenAI] = None

        self.routing_config = self._build_routing_config()

    @property
    def anthropic(self) -> AsyncAnthropic:
        if self._anthropic_client is None:
            if not self.anthropic_key:
                raise LLMRouterError("ANTHROPIC_API_KEY not configured")
            self._anthropic_client = AsyncAnthropic(api_key=self.anthropic_key)
        return self._anthropic_client

    @property
    def openai(self) -> AsyncOpenAI:
        if self._openai_client is None:
            if not self.openai_key:
                raise LLMRouterError("OPENAI_API_KEY not configured")
            self._openai_client = AsyncOpenAI(api_key=self.openai_key)
        return self._openai_client

    def _build_routing_config(self) -> Dict[TaskType, Dict[str, Any]]:
        return {
            'personalized_ranking': {
                'provider': 'anthropic',
                'model': 'claude-sonnet-4-20250514',
                'max_tokens': 1500,
                'temperature': 0.3,
                'cost_per_1m_input': 3.00,
                'cost_per_1m_output': 15.00,
                'fallbacks': [{
                    'provider': 'openai',
                    'model': 'gpt-4o',
                    'max_tokens': 1500,
                    'temperature': 0.3,
                    'cost_per_1m_input': 2.50,
                    'cost_per_1m_output': 10.00,
                }]
            },
            'similarity_ranking': {
                'provider': 'anthropic',
                'model': 'claude-sonnet-4-20250514',
                'max_tokens': 1500,
                'temperature': 0.2,
                'cost_per_1m_input': 3.00,
                'cost_per_1m_output': 15.00,
                'fallbacks': [{
                    'provider': 'openai',
                    'model': 'gpt-4o-mini',
                    'max_tokens': 1500,
                    'temperature': 0.2,
                    'cost_per_1m_input': 0.15,
                    'cost_per_1m_output': 0.60,
                }]
            },
        }

    def _has_key(self, provider: str) -> bool:
        if provider == 'anthropic':
            return bool(self.anthropic_key)
        if provider == 'openai':
            return bool(self.openai_key)
        return False

    async def complete(
        self,
        task_type: TaskType,
        system_prompt: str,
        user_prompt: str,
        tenant_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if task_type not in self.routing_config:
            raise ValueError(f"Unknown task_type: {task_type}")

        initial_config = self.routing_config[task_type]
        chain = [initial_config] + initial_config.get('fallbacks', [])
        chain = [config for config in chain if self._has_key(config['provider'])]
        if not chain:
            raise LLMRouterError(f"No LLM provider configured for {task_type}")

        start_time = datetime.utcnow()
        last_error: Optional[Exception] = None

        for i, config in enumerate(chain):
            try:
                result = await self._call_provider(
                    provider=config['provider'],
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    config=config
                )

                latency = (datetime.utcnow() - start_time).total_seconds()
                logger.info(
                    f"LLM {task_type} via {config['provider']}/{result['model']} "
                    f"tenant={tenant_id} tokens={result['tokens']} cost=${result['cost']:.4f} "
                    f"latency={latency:.2f}s fallback={i > 0}"
                )

                return {
                    'content': result['content'],
                    'model': result['model'],
                    'provider': config['provider'],
                    'cost': result['cost'],
                    'latency': latency
                }

            except Exception as e:
                logger.warning(f"Provider {config['provider']} ({config['model']}) failed: {e}")
                last_error = e
                continue

        logger.error(f"All LLM providers failed for {task_type}. Last error: {last_error}")
        raise ProviderError(f"All LLM providers failed for {task_type}: {last_error}")

    async def _call_provider(self, provider, system_prompt, user_prompt, config):
        if provider == 'anthropic':
            return await self._call_anthropic(system_prompt, user_prompt, config)
        elif provider == 'openai':
            return await self._call_openai(system_prompt, user_prompt, config)
        raise ValueError(f"Unknown provider: {provider}")

    # Ranking runs under a request timeout, so retries stay short
    @retry(stop=stop_after_attempt(2), wait=wait_exponential(multiplier=0.5, min=0.5, max=2), reraise=True)
    async def _call_anthropic(self, system_prompt, user_prompt, config):
        response = await self.anthropic.messages.create(
            model=config['model'],
            max_tokens=config['max_tokens'],
            temperature=config['temperature'],
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}]
        )
        cost = self._calculate_cost(response.usage.input_tokens, response.usage.output_tokens,
                                   config['cost_per_1m_input'], config['cost_per_1m_output'])
        return {
            'content': response.content[0].text,
            'model': config['model'],
            'tokens': {'input': response.usage.input_tokens, 'output': response.usage.output_tokens},
            'cost': cost
        }

    @retry(stop=stop_after_attempt(2), wait=wait_exponential(multiplier=0.5, min=0.5, max=2), reraise=True)
    async def _call_openai(self, system_prompt, user_prompt, config):
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        response = await self.openai.chat.completions.create(
            model=config['model'],
            max_tokens=config['max_tokens'],
            temperature=config['temperature'],
            messages=messages,
            response_format={"type": "json_object"},
        )
        cost = self._calculate_cost(response.usage.prompt_tokens, response.usage.completion_tokens,
                                   config['cost_per_1m_input'], config['cost_per_1m_output'])
        return {
            'content': response.choices[0].message.content,
            'model': config['model'],
            'tokens': {'input': response.usage.prompt_tokens, 'output': response.usage.completion_tokens},
            'cost': cost
        }

    def _calculate_cost(self, input_t, output_t, input_p, output_p):
        return (input_t / 1_000_000 * input_p) + (output_t / 1_000_000 * output_p)
