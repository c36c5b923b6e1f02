"""Completion dispatcher: resolve a model, augment the prompt, route to a provider."""

import logging

from scholar.agents.models import AIModelConfig, CompletionRequest, ContextRecord
from scholar.agents.providers import CompletionProvider, default_providers
from scholar.core.database import ResearchDatabase
from scholar.core.errors import NoModelConfigured, ProviderNotImplemented

logger = logging.getLogger(__name__)


# ── Prompt Builders ──────────────────────────────────────────────────


def build_records_prompt(prompt: str, records: list[ContextRecord]) -> str:
    """Wrap a question in a research-assistant template over the given papers."""
    paper_blocks = "\n".join(
        f"""
PAPER {i}:
Title: {r.name}
Author: {r.author or 'Unknown'}
Year: {r.year or 'Unknown'}
Abstract: {r.abstract or 'No abstract provided.'}
DOI: {r.doi or 'N/A'}
"""
        for i, r in enumerate(records, 1)
    )

    return f"""I want you to act as an academic research assistant. I'll provide you with information about academic papers, and you'll help answer questions about them.

CONTEXT:
The following are summaries of academic papers related to the query:

{paper_blocks}

Based on the above academic papers, please answer the following question:
{prompt}

Your response should be clear, factual, and directly reference the papers when appropriate. If the papers don't contain information to answer the question, please state that clearly."""


def build_context_prompt(prompt: str, context: str) -> str:
    return (
        f"CONTEXT: {context}\n\nQUESTION: {prompt}\n\n"
        "Please provide a helpful response based on the context provided."
    )


def augment_prompt(request: CompletionRequest) -> str:
    """Records win over free-text context; with neither, the prompt is unchanged."""
    if request.context_records:
        return build_records_prompt(request.prompt, request.context_records)
    if request.context:
        return build_context_prompt(request.prompt, request.context)
    return request.prompt


# ── Dispatcher ───────────────────────────────────────────────────────


class CompletionDispatcher:
    """Single entry point for text completions across providers."""

    def __init__(
        self,
        db: ResearchDatabase,
        providers: dict[str, CompletionProvider] | None = None,
    ):
        self.db = db
        self.providers = providers if providers is not None else default_providers()

    def resolve_model(self, model_id: int | None = None) -> AIModelConfig:
        """Explicit id if given, else the default model."""
        model = (
            self.db.get_ai_model(model_id)
            if model_id is not None
            else self.db.get_default_model()
        )
        if model is None:
            raise NoModelConfigured()
        return model

    def generate_completion(
        self,
        prompt: str,
        model_id: int | None = None,
        context: str | None = None,
        context_records: list[ContextRecord] | None = None,
    ) -> str:
        request = CompletionRequest(
            prompt=prompt,
            model_id=model_id,
            context=context,
            context_records=context_records or [],
        )
        return self.complete(request)

    def complete(self, request: CompletionRequest) -> str:
        model = self.resolve_model(request.model_id)
        logger.info("Using AI model '%s' (%s)", model.name, model.provider)

        provider = self.providers.get(model.provider)
        if provider is None:
            raise ProviderNotImplemented(model.provider)

        return provider.complete(model, augment_prompt(request))

    def test_connection(self, model: AIModelConfig) -> bool:
        """Probe a model's provider. Logs and returns False on any failure."""
        provider = self.providers.get(model.provider)
        if provider is None:
            logger.error("No provider registered for %s", model.provider)
            return False

        try:
            provider.check(model)
        except Exception as exc:
            logger.error("Connection to %s failed: %s", model.provider, exc)
            return False

        logger.info("Successfully connected to %s", model.provider)
        return True
