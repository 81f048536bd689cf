"""
Delivery of prepared prompts to specialist backends.
"""

from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger

from .llm import LLMError, OpenRouterClient
from .models import InvocationResult, SpecialistProfile


class InvocationError(Exception):
    """Raised when a specialist backend call fails."""
    pass


class SpecialistInvoker(ABC):
    """Sends a prepared prompt to the backend of one specialist."""

    @abstractmethod
    async def invoke(
        self,
        specialist: SpecialistProfile,
        prepared_prompt: str,
        session_id: str
    ) -> InvocationResult:
        """
        Invoke a specialist.

        Raises:
            InvocationError: If the backend call fails
        """


class LLMSpecialistInvoker(SpecialistInvoker):
    """
    Every specialist is served by one generation model; the persona comes
    entirely from the prepared prompt.
    """

    def __init__(self, llm_client: OpenRouterClient, model: Optional[str] = None, temperature: float = 0.7):
        self.llm_client = llm_client
        self.model = model or llm_client.generation_model
        self.temperature = temperature

    async def invoke(
        self,
        specialist: SpecialistProfile,
        prepared_prompt: str,
        session_id: str
    ) -> InvocationResult:
        logger.info(
            "Invoking specialist",
            specialist_id=specialist.id,
            session_id=session_id,
            prompt_length=len(prepared_prompt)
        )

        try:
            text = await self.llm_client.generate_response(
                messages=[{"role": "user", "content": prepared_prompt}],
                model=self.model,
                temperature=self.temperature,
                user=session_id
            )
        except LLMError as e:
            raise InvocationError(f"{specialist.name} is unavailable: {str(e)}")

        return InvocationResult(response_text=text, generated_by=self.model)
