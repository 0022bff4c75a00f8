"""
Content transform: the two Gemini phases of a refresh.

Selection: one call with every candidate's title, url and portal. The model
answers with a JSON document naming the PRINCIPALES urls and a few urls per
topical category. Anything that does not validate against SelectionSchema is a
SelectionError; there is no best-effort parsing of free text.

Enrichment: one call per fetched article producing an optimized title, a short
description and a long-form explanation. A failed call degrades to a fallback
Enrichment (original title, excerpt-based description, fixed explanation)
instead of raising.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from rsmnews.config import (
    ENRICH_CONTENT_MAX_CHARS,
    GEMINI_MODEL,
    PRINCIPAL_CATEGORY,
    TOPICAL_CATEGORIES,
)
from rsmnews.news.errors import SelectionError
from rsmnews.news.models import ArticleCandidate, Enrichment, SelectedArticle
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)

FALLBACK_DESCRIPTION_CHARS = 200
FALLBACK_EXPLANATION = (
    "No pudimos generar una explicación ampliada para esta noticia. "
    "Podés leer la nota completa en el enlace original."
)

LLMCall = Callable[..., str]


# ============================================================================
# Schemas
# ============================================================================


class CategorySelection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    urls: list[str]

    @field_validator("name")
    @classmethod
    def _known_category(cls, value: str) -> str:
        name = value.strip().upper()
        if name not in TOPICAL_CATEGORIES:
            raise ValueError(f"unknown category {value!r}")
        return name


class SelectionSchema(BaseModel):
    """Shape of the selection answer."""

    model_config = ConfigDict(extra="forbid")

    top: list[str] = Field(min_length=1, description="PRINCIPALES urls, most important first")
    categories: list[CategorySelection] = Field(default_factory=list)


class EnrichmentSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    explanation: str = Field(min_length=1)


SELECTION_SYSTEM_INSTRUCTION = f"""Sos un editor de noticias argentino.
Recibís una lista de titulares de portales de noticias, cada uno con su URL y su portal.

Tu tarea es elegir y clasificar noticias:
- "top": las 5 noticias más importantes del día, sin importar la categoría.
- "categories": entre 3 y 4 noticias para cada una de estas categorías:
  {", ".join(TOPICAL_CATEGORIES)}.
  Omití una categoría si no hay noticias para ella.

REGLAS:
- Usá únicamente URLs que aparezcan en la lista, copiadas exactamente.
- Una noticia de "top" puede repetirse en su categoría temática.
- No repitas una misma URL en dos categorías temáticas.

Respondé SOLO con JSON con esta forma exacta:
{{"top": ["url", ...], "categories": [{{"name": "POLÍTICA", "urls": ["url", ...]}}, ...]}}"""

ENRICHMENT_SYSTEM_INSTRUCTION = """Sos un periodista argentino que explica noticias
a alguien inteligente con poco tiempo. Tono informal-profesional, frases directas.

Con el texto de la nota devolvé:
- "title": un título corto y claro (máximo 90 caracteres), sin nombre del portal.
- "description": una o dos oraciones que resuman la noticia.
- "explanation": tres o cuatro párrafos que expliquen el contexto y por qué importa.

No uses emojis ni formato markdown.
Respondé SOLO con JSON: {"title": "...", "description": "...", "explanation": "..."}"""


def _default_llm(*args, **kwargs) -> str:
    from rsmnews.llm.retry import call_llm

    return call_llm(*args, **kwargs)


def fallback_enrichment(title: str, content: str, excerpt: str = "") -> Enrichment:
    """Enrichment used when the model call fails."""
    source = (excerpt or content).strip()
    description = source[:FALLBACK_DESCRIPTION_CHARS].strip()
    if len(source) > FALLBACK_DESCRIPTION_CHARS:
        description = description.rsplit(" ", 1)[0] + "..."
    return Enrichment(
        title=title,
        description=description or title,
        explanation=FALLBACK_EXPLANATION,
        fallback=True,
    )


class ContentTransformer:
    """Gemini-backed selection and enrichment.

    `llm` defaults to rsmnews.llm.retry.call_llm and is injectable for tests.
    """

    SELECTION_PROMPT_TEMPLATE = "Titulares disponibles ({count}):\n\n{lines}"
    ENRICHMENT_PROMPT_TEMPLATE = "Título original: {title}\n\nTexto de la nota:\n{content}"

    def __init__(self, llm: LLMCall | None = None):
        self._llm = llm or _default_llm

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_and_categorize(self, candidates: Sequence[ArticleCandidate]) -> list[SelectedArticle]:
        """
        Ask the model for PRINCIPALES and topical picks.

        Returns:
            Ordered (url, category) pairs, PRINCIPALES first, then categories
            in the order the model listed them

        Raises:
            SelectionError: If the call fails or the answer does not validate
        """
        prompt = self._build_selection_prompt(candidates)

        try:
            with time_block("transform.selection"):
                response_text = self._llm(
                    prompt,
                    counter_prefix="selection",
                    system_instruction=SELECTION_SYSTEM_INSTRUCTION,
                    json_output=True,
                )
        except Exception as e:
            counter("transform.selection.error")
            log_event("transform.selection.error", error=str(e), model=GEMINI_MODEL)
            raise SelectionError(f"Selection call failed: {e}") from e

        selection = self._parse_selection(response_text)

        pairs = [SelectedArticle(url=url, category=PRINCIPAL_CATEGORY) for url in selection.top]
        for category in selection.categories:
            pairs.extend(SelectedArticle(url=url, category=category.name) for url in category.urls)

        counter("transform.selection.success")
        log_event(
            "transform.selection.result",
            candidates=len(candidates),
            selected=len(pairs),
            categories=len(selection.categories),
        )
        return pairs

    def _build_selection_prompt(self, candidates: Sequence[ArticleCandidate]) -> str:
        lines = "\n".join(
            f"- [{candidate.portal}] {candidate.title} | {candidate.url}" for candidate in candidates
        )
        return self.SELECTION_PROMPT_TEMPLATE.format(count=len(candidates), lines=lines)

    def _parse_selection(self, response_text: str | None) -> SelectionSchema:
        if not response_text or not response_text.strip():
            counter("transform.selection.malformed")
            raise SelectionError("Empty selection response")
        try:
            data = json.loads(response_text)
            return SelectionSchema.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            counter("transform.selection.malformed")
            logger.error("Malformed selection response: %s", e)
            raise SelectionError(f"Malformed selection response: {e}") from e

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def enrich_article(self, title: str, content: str, excerpt: str = "") -> Enrichment:
        """
        Produce title, description and explanation for one article.

        Never raises; a failed call or unusable answer yields
        fallback_enrichment(title, content, excerpt).
        """
        prompt = self.ENRICHMENT_PROMPT_TEMPLATE.format(
            title=title.strip(),
            content=content[:ENRICH_CONTENT_MAX_CHARS],
        )

        try:
            response_text = self._llm(
                prompt,
                counter_prefix="enrichment",
                system_instruction=ENRICHMENT_SYSTEM_INSTRUCTION,
                json_output=True,
            )
            validated = EnrichmentSchema.model_validate(json.loads(response_text))
        except Exception as e:
            counter("transform.enrichment.fallback")
            logger.warning("Enrichment failed for '%s', using fallback: %s", title[:60], e)
            return fallback_enrichment(title, content, excerpt)

        counter("transform.enrichment.success")
        return Enrichment(
            title=validated.title.strip(),
            description=validated.description.strip(),
            explanation=validated.explanation.strip(),
        )
