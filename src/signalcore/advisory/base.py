"""Advisory (text-generation) provider interface."""

from abc import ABC, abstractmethod


class AdvisoryProvider(ABC):
    """Free-text advisory collaborator, typically an LLM endpoint."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def get_advisory(self, prompt: str) -> str:
        """
        Send a prompt and return the raw response text.

        Raises:
            AdvisoryError: Transport failure or non-success response
        """
        ...
