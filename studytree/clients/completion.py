import logging

from groq import APIError, AsyncGroq

from studytree.config import settings
from studytree.errors import ConfigurationError, ServiceError

logger = logging.getLogger(__name__)


def check_configuration(api_key: str | None = None) -> None:
    """Fail fast when no completion credential is configured.

    Called from the application lifespan and again on every submission, so a
    missing key is reported before a lecture is accepted rather than being
    absorbed by a fallback later on.
    """
    if not (api_key if api_key is not None else settings.completion_api_key):
        raise ConfigurationError(
            "Completion API key is not configured (set COMPLETION_API_KEY)."
        )


class CompletionClient:
    """Async wrapper around the Groq SDK chat-completions endpoint.

    Usage::

        client = CompletionClient()                     # key/model from settings
        text = await client.complete(messages, 1500)    # plain completion

        fast = client.with_model("llama-3.1-8b-instant")  # shares the HTTP session

    The client never retries.  Callers that know how to validate a response
    (formatter, summarizer, quiz generator, slide detector) own their retry
    or fallback policy.
    """

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self._model = model or settings.completion_model
        self._api_key = api_key if api_key is not None else settings.completion_api_key
        self._base_url = base_url or settings.completion_base_url
        self._client: AsyncGroq | None = None

    # ------------------------------------------------------------------
    # Model switching
    # ------------------------------------------------------------------
    @property
    def default_model(self) -> str:
        return self._model

    def with_model(self, model_name: str) -> "CompletionClient":
        """Return a new CompletionClient bound to *model_name*.

        The underlying ``AsyncGroq`` client (and its httpx session) is shared.
        """
        clone = CompletionClient.__new__(CompletionClient)
        clone._model = model_name
        clone._api_key = self._api_key
        clone._base_url = self._base_url
        clone._client = self._sdk()
        return clone

    def _sdk(self) -> AsyncGroq:
        if not self._api_key:
            raise ConfigurationError(
                "Completion API key is not configured (set COMPLETION_API_KEY)."
            )
        if self._client is None:
            kwargs: dict = {"api_key": self._api_key}
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = AsyncGroq(**kwargs)
        return self._client

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------
    async def complete(
        self,
        messages: list[dict],
        max_tokens: int = 1500,
        *,
        temperature: float | None = None,
    ) -> str:
        """Plain-text chat completion. Returns the content string."""
        client = self._sdk()
        try:
            resp = await client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=(
                    settings.completion_temperature
                    if temperature is None
                    else temperature
                ),
            )
        except APIError as exc:
            logger.error("Completion request failed: %s", exc)
            raise ServiceError("Failed to communicate with the AI model.") from exc

        if not resp.choices:
            raise ServiceError("Completion service returned no choices.")
        return resp.choices[0].message.content or ""
