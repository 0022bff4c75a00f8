"""Shared LLM call with retry logic.

Both phases of the content transform (selection and enrichment) go through
call_llm. Transient Vertex AI failures are converted to builtin exception
types and retried with exponential backoff; everything else propagates to the
caller, which owns the final-failure policy (hard error for selection,
fallback text for enrichment).
"""

from __future__ import annotations

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from rsmnews.config import LLM_MAX_RETRIES, LLM_TIMEOUT_SECONDS
from rsmnews.infrastructure.settings import GEMINI_MAX_TOKENS, GEMINI_TEMPERATURE
from rsmnews.llm.gemini import get_backend, get_gemini_model_with_options
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter

logger = get_logger(__name__)


@retry(
    stop=stop_after_attempt(LLM_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((TimeoutError, ConnectionError, OSError)),
    reraise=True,
)
def call_llm(
    prompt: str,
    counter_prefix: str = "llm",
    system_instruction: str | None = None,
    json_output: bool = False,
    max_output_tokens: int | None = None,
) -> str:
    """Call the model with retry and Vertex AI exception conversion.

    Args:
        prompt: The prompt to send to the model.
        counter_prefix: Telemetry counter prefix (e.g., "selection", "enrichment").
        system_instruction: Optional system instruction.
        json_output: Ask for application/json output. The prompt carries the
            expected shape; callers validate the payload with pydantic.
        max_output_tokens: Override GEMINI_MAX_TOKENS for this call.

    Returns:
        The model's response text.

    Raises:
        TimeoutError: On deadline exceeded (retryable).
        ConnectionError: On service unavailable or internal error (retryable).
        OSError: On resource exhausted / rate limited (retryable).
        Exception: On other errors (not retried, caller handles).
    """
    from google.api_core.exceptions import (
        DeadlineExceeded,
        InternalServerError,
        ResourceExhausted,
        ServiceUnavailable,
    )

    model = get_gemini_model_with_options(system_instruction=system_instruction)

    generation_config = {
        "temperature": GEMINI_TEMPERATURE,
        "max_output_tokens": max_output_tokens or GEMINI_MAX_TOKENS,
    }
    if json_output:
        generation_config["response_mime_type"] = "application/json"

    # only google-generativeai takes a per-request deadline; Vertex calls are
    # bounded by the caller (NewsService)
    request_kwargs = {}
    if get_backend() == "genai":
        request_kwargs["request_options"] = {"timeout": LLM_TIMEOUT_SECONDS}

    counter(f"{counter_prefix}.calls")
    try:
        response = model.generate_content(prompt, generation_config=generation_config, **request_kwargs)
        return response.text
    except DeadlineExceeded as e:
        counter(f"{counter_prefix}.timeout")
        logger.warning("LLM call timed out after %ds", LLM_TIMEOUT_SECONDS)
        raise TimeoutError(f"LLM call timed out: {e}") from e
    except ServiceUnavailable as e:
        counter(f"{counter_prefix}.service_unavailable")
        logger.warning("LLM service unavailable, will retry: %s", e)
        raise ConnectionError(f"LLM service unavailable: {e}") from e
    except ResourceExhausted as e:
        counter(f"{counter_prefix}.rate_limited")
        logger.warning("LLM rate limited (429), will retry: %s", e)
        raise OSError(f"LLM rate limited: {e}") from e
    except InternalServerError as e:
        counter(f"{counter_prefix}.internal_error")
        logger.warning("LLM internal error (500), will retry: %s", e)
        raise ConnectionError(f"LLM internal error: {e}") from e
    except Exception as e:
        logger.error("LLM call failed: %s", e)
        raise
