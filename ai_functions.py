import cerebras.cloud.sdk as cerebras_sdk
import groq
import instructor
import pydantic
import structlog
from cerebras.cloud.sdk import Cerebras
from groq import Groq
from instructor.exceptions import InstructorRetryException
from openinference.semconv.trace import SpanAttributes
from opentelemetry import trace

from config import (
    ANALYSIS_TEMPERATURE,
    CEREBRAS_API_KEY,
    CEREBRAS_MODEL,
    GROQ_API_KEY,
    GROQ_MODEL,
)
from errors import AnalysisError, Malformed, QuotaExceeded, RateLimited, Unavailable

logger = structlog.get_logger(__name__)


def classify_provider_error(error: Exception) -> AnalysisError:
    """Map an SDK or instructor failure onto the analysis error taxonomy."""
    if isinstance(error, AnalysisError):
        return error
    status = getattr(error, "status_code", None)
    if status is None and error.__cause__ is not None:
        status = getattr(error.__cause__, "status_code", None)
    if status == 429:
        return RateLimited(f"Analysis service rate limited: {error}")
    if status == 402:
        return QuotaExceeded(f"Analysis service quota exceeded: {error}")
    if isinstance(error, (groq.APIError, cerebras_sdk.APIError)):
        return Unavailable(f"Analysis service error: {error}")
    if isinstance(error, (InstructorRetryException, pydantic.ValidationError)):
        return Malformed(f"Analysis response did not match the expected shape: {error}")
    return Unavailable(f"Analysis service unavailable: {error}")


def groq_or_cerebras(messages, temperature, response_model=None):
    """
    Try Groq first, if that fails, try Cerebras.

    Raises the analysis error of the last provider tried.
    """
    try:
        if response_model is not None:
            client = instructor.from_groq(Groq(api_key=GROQ_API_KEY))
            return client.chat.completions.create(
                model=GROQ_MODEL,
                messages=messages,
                temperature=temperature,
                stream=False,
                response_model=response_model,
                max_retries=2,
            )
        client = Groq(api_key=GROQ_API_KEY)
        return client.chat.completions.create(
            model=GROQ_MODEL,
            messages=messages,
            temperature=temperature,
            stream=False,
        )
    except Exception as e:
        logger.warning("groq_failed", error=str(e), fallback="cerebras")

    try:
        if response_model is not None:
            client = instructor.from_cerebras(
                Cerebras(api_key=CEREBRAS_API_KEY), mode=instructor.Mode.CEREBRAS_JSON
            )
            return client.chat.completions.create(
                model=CEREBRAS_MODEL,
                messages=messages,
                temperature=temperature,
                stream=False,
                response_model=response_model,
                max_retries=2,
            )
        client = Cerebras(api_key=CEREBRAS_API_KEY)
        return client.chat.completions.create(
            model=CEREBRAS_MODEL,
            messages=messages,
            temperature=temperature,
            stream=False,
        )
    except Exception as e:
        error = classify_provider_error(e)
        logger.warning("cerebras_failed", error=str(e), classified=error.code)
        raise error from e


class TextAnalyst:
    """The external text analysis capability.

    ``complete`` returns plain text, or an instance of ``response_model`` when
    one is given. Failures surface as ``AnalysisError`` subclasses.
    """

    def __init__(self, temperature: float = ANALYSIS_TEMPERATURE):
        self.temperature = temperature

    def complete(self, system_prompt: str, user_prompt: str, response_model=None):
        tracer = trace.get_tracer(__name__)
        with tracer.start_as_current_span("analysis_complete") as span:
            span.set_attribute(SpanAttributes.OPENINFERENCE_SPAN_KIND, "LLM")
            span.set_attribute(SpanAttributes.LLM_PROMPT_TEMPLATE, system_prompt)
            span.set_attribute(SpanAttributes.INPUT_VALUE, user_prompt)
            messages = [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ]
            response = groq_or_cerebras(messages, self.temperature, response_model)
            if response_model is not None:
                span.set_attribute(SpanAttributes.OUTPUT_VALUE, str(response))
                return response

            text = response.choices[0].message.content or ""
            if not text.strip():
                raise Malformed("Analysis service returned an empty response")
            span.set_attribute(SpanAttributes.OUTPUT_VALUE, text)
        return text
