"""
Gemini model manager.

One shared model instance serves both phases of the content transform
(selection and enrichment). Supports two backends:
  1. Vertex AI SDK (production): uses GOOGLE_CLOUD_PROJECT + service account
  2. google-generativeai (local dev): uses GOOGLE_API_KEY
"""

from __future__ import annotations

import os
from functools import lru_cache

from rsmnews.infrastructure.settings import (
    GEMINI_LOCATION,
    GEMINI_MODEL,
    get_google_api_key,
    get_google_cloud_project,
)
from rsmnews.observability.logging import get_logger

logger = get_logger(__name__)

# "vertexai" or "genai", set by get_gemini_model
_backend: str | None = None


class GeminiInitializationError(RuntimeError):
    """Raised when Gemini model cannot be initialized."""


def llm_credentials_present() -> bool:
    """True when either backend has what it needs (no API call is made)."""
    return bool(get_google_api_key() or get_google_cloud_project())


@lru_cache(maxsize=1)
def get_gemini_model():
    """
    Get or create the shared Gemini model instance (no system instruction).

    Tries Vertex AI first. Falls back to google-generativeai with
    GOOGLE_API_KEY when the Vertex SDK is not installed.

    Raises:
        GeminiInitializationError: If model cannot be initialized
    """
    global _backend
    project = get_google_cloud_project()
    location = os.getenv("GEMINI_LOCATION", "") or GEMINI_LOCATION or "us-central1"

    try:
        import vertexai
        from vertexai.generative_models import GenerativeModel

        if project:
            vertexai.init(project=project, location=location)
            model = GenerativeModel(GEMINI_MODEL)
            _backend = "vertexai"

            logger.info(
                "Initialized Gemini model (Vertex AI): project=%s, location=%s, model=%s",
                project,
                location,
                GEMINI_MODEL,
            )
            return model

        logger.info("GOOGLE_CLOUD_PROJECT not set, trying google-generativeai")

    except ImportError:
        logger.info("Vertex AI SDK not installed, trying google-generativeai fallback")

    try:
        import google.generativeai as genai

        api_key = get_google_api_key()
        if not api_key:
            raise GeminiInitializationError(
                "Neither GOOGLE_CLOUD_PROJECT nor GOOGLE_API_KEY is set."
            )

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(GEMINI_MODEL)
        _backend = "genai"

        logger.info("Initialized Gemini model (google-generativeai): model=%s", GEMINI_MODEL)

        return model

    except ImportError as e:
        raise GeminiInitializationError(
            "No Gemini SDK available. Install google-cloud-aiplatform or google-generativeai."
        ) from e
    except GeminiInitializationError:
        raise
    except Exception as e:
        logger.error("Failed to initialize Gemini model: %s", e)
        raise GeminiInitializationError(f"Failed to initialize Gemini: {e}") from e


def get_backend() -> str | None:
    """"vertexai" or "genai" once a model has been created, else None."""
    return _backend


def get_gemini_model_with_options(system_instruction: str | None = None) -> object:
    """Create a Gemini model instance with an optional system instruction.

    System instructions are per-model-instance in the Gemini API, so a fresh
    GenerativeModel is built when one is given; otherwise the cached singleton
    is returned.
    """
    if system_instruction is None:
        return get_gemini_model()

    get_gemini_model()

    if _backend == "vertexai":
        from vertexai.generative_models import GenerativeModel

        return GenerativeModel(GEMINI_MODEL, system_instruction=system_instruction)

    import google.generativeai as genai

    return genai.GenerativeModel(GEMINI_MODEL, system_instruction=system_instruction)
