"""
OpenRouter-compatible chat completion client.

Shared by the remote classifier and the specialist invoker; both only need
"send these messages to this model, give me the text back".
"""

from typing import Any, Dict, List, Optional

from loguru import logger
from openai import AsyncOpenAI

from .utils import ConfigurationError, Timer, get_config


class LLMError(Exception):
    """Raised when a chat completion call fails or returns nothing."""
    pass


class OpenRouterClient:
    """Chat completions through an OpenRouter-compatible endpoint."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config if config is not None else get_config()

        api_key = self.config.get("OPENROUTER_API_KEY")
        if not api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is required for LLM-backed routing")

        self.client = AsyncOpenAI(
            base_url=self.config.get("LLM_BASE_URL", "https://openrouter.ai/api/v1"),
            api_key=api_key,
            timeout=self.config.get("INVOCATION_TIMEOUT_SECONDS", 30),
            default_headers={
                "X-Title": "Agent Orchestrator"
            }
        )

        # Model configurations
        self.generation_model = self.config["GENERATION_MODEL"]
        self.routing_model = self.config["ROUTING_MODEL"]

        logger.info("OpenRouter client initialized",
                    generation_model=self.generation_model,
                    routing_model=self.routing_model)

    async def generate_response(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        **kwargs
    ) -> str:
        """
        Send one chat completion request and return the reply text.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to generation model)
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            **kwargs: Additional parameters for the API

        Returns:
            str: Generated response text

        Raises:
            LLMError: If generation fails
        """
        if model is None:
            model = self.generation_model

        try:
            logger.info("Generating LLM response",
                        model=model,
                        message_count=len(messages),
                        temperature=temperature)

            with Timer("llm_generation"):
                response = await self.client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **kwargs
                )
        except Exception as e:
            logger.error("LLM generation failed", model=model, error=str(e), error_type=type(e).__name__)
            raise LLMError(f"Generation failed: {str(e)}")

        if not response.choices:
            raise LLMError("No response choices returned from LLM")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise LLMError("Empty response from LLM")

        return content.strip()
