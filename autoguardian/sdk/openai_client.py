"""
OpenAI inference client.

One synchronous chat completion per call. Provider failures are mapped to
the AutoGuardian error taxonomy; nothing is retried.
"""

import logging
from typing import Any, Dict, List, Optional

from openai import APIError, AuthenticationError, OpenAI, RateLimitError

from ..core.errors import MalformedModelOutput, ProviderBusy, ProviderConfigError, ProviderError
from ..core.prompts import ComposedPrompt

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"


class InferenceClient:
    """Text/vision model client used by the analysis endpoints.

    Construct once per process and share it between requests.
    """

    def __init__(self, model: str = DEFAULT_MODEL, api_key: Optional[str] = None):
        """Initialize the client.

        Args:
            model: OpenAI model name (required, must accept image input
                for quote photos)
            api_key: API key; the SDK falls back to ``OPENAI_API_KEY``

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.model = model
        self.client = OpenAI(api_key=api_key, max_retries=0)

    @staticmethod
    def build_messages(prompt: ComposedPrompt) -> List[Dict[str, Any]]:
        """Translate a composed prompt into chat messages."""
        if prompt.image is None:
            user_content: Any = prompt.text
        else:
            user_content = [
                {"type": "image_url", "image_url": {"url": prompt.image.data_url}},
                {"type": "text", "text": prompt.text},
            ]
        return [
            {"role": "system", "content": prompt.system},
            {"role": "user", "content": user_content},
        ]

    def complete(self, prompt: ComposedPrompt, max_tokens: int) -> str:
        """Send one prompt and return the generated text.

        Args:
            prompt: System instruction and user content
            max_tokens: Upper bound on generated tokens

        Returns:
            Raw text of the first choice

        Raises:
            ProviderConfigError: If the provider rejects our credentials
            ProviderBusy: If the provider is rate limiting
            ProviderError: For any other provider failure
            MalformedModelOutput: If the response carries no text
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(prompt),
                max_tokens=max_tokens,
            )
        except AuthenticationError as e:
            logger.error("Model provider rejected credentials: %s", e)
            raise ProviderConfigError() from e
        except RateLimitError as e:
            logger.error("Model provider rate limit hit: %s", e)
            raise ProviderBusy() from e
        except APIError as e:
            logger.error("Model provider error: %s", e)
            raise ProviderError() from e

        if not response.choices or not response.choices[0].message.content:
            logger.error("No text response received from model %s", self.model)
            raise MalformedModelOutput("")

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                "Model %s used %s prompt / %s completion tokens",
                self.model, usage.prompt_tokens, usage.completion_tokens,
            )
        return response.choices[0].message.content
