"""Repository summarization and classification using an OpenAI-compatible LLM"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Union
import json
import logging

import httpx
from openai import APIError, AsyncOpenAI, RateLimitError as OpenAIRateLimitError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.config.settings import settings
from app.services.credentials import CredentialPool
from app.services.pipeline_exceptions import (
    PipelineConfigurationError,
    RateLimitError,
    TransientPipelineError,
)
from app.services.readme_cleaner import clean_readme, has_enough_signal

logger = logging.getLogger(__name__)

SYSTEM_MESSAGE = (
    "You are a technical writer who explains open-source repositories to developers. "
    "Write in a natural, engaging, factual style and return valid JSON only."
)


class RepositoryAnalysis(BaseModel):
    """Structured enrichment returned by the LLM"""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    summary: str = Field(min_length=1)
    content: str = Field(min_length=1)
    experience: Literal["beginner", "intermediate", "advanced"]
    usability: Literal["easy", "intermediate", "difficult"]
    deployment: Literal["easy", "intermediate", "advanced", "expert"]


ANALYSIS_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "summary": {"type": "string", "description": "2-3 sentence excerpt"},
        "content": {"type": "string", "description": "Full article in Markdown"},
        "experience": {"type": "string", "enum": ["beginner", "intermediate", "advanced"]},
        "usability": {"type": "string", "enum": ["easy", "intermediate", "difficult"]},
        "deployment": {"type": "string", "enum": ["easy", "intermediate", "advanced", "expert"]},
    },
    "required": ["summary", "content", "experience", "usability", "deployment"],
    "additionalProperties": False,
}


@dataclass(frozen=True)
class EmptyEnrichment:
    """
    No-op enrichment outcome

    `retryable` is False when the README carries too little signal (the
    record is finished) and True when the LLM answered with something that
    does not match the schema (the record stays eligible).
    """

    reason: str
    retryable: bool = False


EnrichmentOutcome = Union[RepositoryAnalysis, EmptyEnrichment]
LLMCall = Callable[[str, str], Awaitable[str]]


class SummarizerService:
    """Builds prompts from cleaned READMEs and validates structured LLM output"""

    def __init__(
        self,
        credential_pool: Optional[CredentialPool] = None,
        llm_call: Optional[LLMCall] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.pool = credential_pool if credential_pool is not None else CredentialPool.from_settings()
        self.model = model or settings.OPENAI_MODEL
        self.temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.LLM_MAX_TOKENS
        self.base_url = base_url or settings.OPENAI_BASE_URL
        self._llm_call = llm_call
        self._http_client = http_client
        self._clients: Dict[str, AsyncOpenAI] = {}

        if self._llm_call is None and self.pool.is_empty:
            raise PipelineConfigurationError("OPENAI_API_KEY (or OPENAI_API_KEYS) is required for enrichment")

    async def enrich(self, readme: Optional[str], metadata: Dict[str, Any]) -> EnrichmentOutcome:
        """
        Generate summary, article content and difficulty labels for a repository

        Args:
            readme: raw README text (may be None)
            metadata: identifier, description, languages, topics, stars

        Returns:
            RepositoryAnalysis, or EmptyEnrichment when there is nothing usable

        Raises:
            RateLimitError: provider answered 429
            TransientPipelineError: network failure or provider error
        """
        if not readme:
            return EmptyEnrichment("README missing")

        cleaned = clean_readme(readme)
        if not has_enough_signal(cleaned):
            return EmptyEnrichment(f"README too short after cleaning ({len(cleaned)} chars)")

        prompt = self._build_prompt(cleaned, metadata)
        content = await self._complete(prompt)
        return self._parse_response(content)

    def _build_prompt(self, cleaned_readme: str, metadata: Dict[str, Any]) -> str:
        """Build the enrichment prompt from repository metadata and README"""
        languages: List[str] = metadata.get("languages") or []
        topics: List[str] = metadata.get("topics") or []

        return f"""Based on the following GitHub repository information and README content, write a human-sounding article about this project and classify it.

Repository: {metadata.get('identifier', '')}
Description: {metadata.get('description') or 'N/A'}
Languages: {', '.join(languages) or 'Unknown'}
Topics: {', '.join(topics[:15]) or 'None'}
Stars: {metadata.get('stars') if metadata.get('stars') is not None else 'Unknown'}

README Content:
{cleaned_readme}

Provide a JSON response with:
1. "summary": A brief summary/excerpt (2-3 sentences)
2. "content": The full article in Markdown. Focus on what makes the project interesting, its features, use cases and value. Comprehensive but not too long.
3. "experience": Experience needed to use it - one of "beginner", "intermediate", "advanced"
4. "usability": How easy it is to get started - one of "easy", "intermediate", "difficult"
5. "deployment": How hard it is to deploy - one of "easy", "intermediate", "advanced", "expert"

Response format:
{{
  "summary": "...",
  "content": "...",
  "experience": "intermediate",
  "usability": "easy",
  "deployment": "intermediate"
}}"""

    async def _complete(self, prompt: str) -> str:
        if self._llm_call is not None:
            return await self._llm_call(SYSTEM_MESSAGE, prompt)

        api_key, request_number, self.pool = self.pool.next()
        client = self._client_for(api_key)
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_completion_tokens=self.max_tokens,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "repository_analysis",
                        "strict": True,
                        "schema": ANALYSIS_JSON_SCHEMA,
                    },
                },
            )
        except OpenAIRateLimitError as e:
            self.pool = self.pool.rotate()
            retry_after = _retry_after_seconds(e)
            logger.warning(f"LLM rate limit on request #{request_number}; rotated credential (retry after {retry_after})")
            raise RateLimitError("LLM provider rate limit (429)", retry_after=retry_after) from e
        except APIError as e:
            raise TransientPipelineError(f"LLM request failed: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def _client_for(self, api_key: str) -> AsyncOpenAI:
        client = self._clients.get(api_key)
        if client is None:
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=self.base_url,
                timeout=settings.LLM_TIMEOUT_SECONDS,
                max_retries=0,
                http_client=self._http_client,
            )
            self._clients[api_key] = client
        return client

    def _parse_response(self, content: str) -> EnrichmentOutcome:
        """Parse and validate the LLM response; malformed output becomes EmptyEnrichment"""
        content = (content or "").strip()

        # Remove markdown code blocks if present
        if content.startswith("```"):
            content = content.split("```")[1]
            if content.startswith("json"):
                content = content[4:]
            content = content.strip()

        try:
            data = json.loads(content)
            return RepositoryAnalysis.model_validate(data)
        except json.JSONDecodeError:
            logger.error(f"Failed to parse LLM response as JSON ({len(content)} chars)")
            return EmptyEnrichment("LLM response was not valid JSON", retryable=True)
        except ValidationError as e:
            logger.error(f"LLM response did not match schema: {e.error_count()} errors")
            return EmptyEnrichment("LLM response did not match schema", retryable=True)


def _retry_after_seconds(error: OpenAIRateLimitError) -> Optional[float]:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    raw = headers.get("retry-after")
    try:
        return float(raw) if raw is not None else None
    except ValueError:
        return None
