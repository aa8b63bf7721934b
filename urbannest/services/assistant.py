"""LLM helpers: listing description drafts and the renter/owner smart assistant."""

from typing import Optional

from langchain_anthropic import ChatAnthropic
from langchain_openai import ChatOpenAI

from urbannest.utils.config import AppConfig
from urbannest.utils.errors import ConfigError, GenerationError
from urbannest.utils.logging import get_structured_logger, mask_sensitive_data, timed

logger = get_structured_logger(__name__)

ASSISTANT_FALLBACK_REPLY = (
    "I'm having trouble connecting right now. How else can I help you with your house search?"
)
DEFAULT_MARKET_CONTEXT = "Multiple premium apartments in Dhaka, Chittagong, and Sylhet."


def get_llm_model():
    """Get the configured chat model."""
    provider = AppConfig.LLM_PROVIDER
    model_name = AppConfig.LLM_MODEL

    logger.debug("Getting LLM model", llm_provider=provider, llm_model=model_name)

    try:
        api_key = AppConfig.llm_api_key(provider)
    except ConfigError as e:
        raise GenerationError(str(e)) from e

    if provider == "anthropic":
        return ChatAnthropic(model=model_name, api_key=api_key)
    return ChatOpenAI(model=model_name, api_key=api_key)


def build_description_prompt(title: str, location: str, rent: float, features: list[str]) -> str:
    rent_text = f"{rent:,.0f}" if rent else "not specified"
    feature_text = ", ".join(features) if features else "none listed"
    return f"""Write a professional and enticing house rental description for a listing in Bangladesh.
Title: {title}
Location: {location}
Rent: BDT {rent_text} per month
Features: {feature_text}
Keep it concise but highlight the benefits of the location and the amenities.
Return only the description text."""


def build_assistant_prompt(query: str, context: Optional[str] = None) -> str:
    return f"""You are the UrbanNest Smart Assistant, an expert in the Bangladesh real estate market.
User query: "{query}"
Context of current listings: {context or DEFAULT_MARKET_CONTEXT}
Help the user with their rental search or owner listing questions. Be polite, helpful, and specific to the Bangladesh context."""


@timed("llm_generate", logger=logger)
async def _generate(prompt: str, purpose: str) -> str:
    model = get_llm_model()
    response = await model.ainvoke(prompt)
    content = response.content if hasattr(response, "content") else str(response)
    if isinstance(content, list):
        # Anthropic may return content blocks
        content = "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
    logger.info(
        "LLM response received",
        purpose=purpose,
        llm_provider=AppConfig.LLM_PROVIDER,
        llm_model=AppConfig.LLM_MODEL,
        response_chars=len(content)
    )
    return content.strip()


async def generate_property_description(
    title: str,
    location: str,
    rent: float,
    features: list[str],
) -> str:
    """Draft a listing description. Raises GenerationError; callers keep their current text."""
    if not AppConfig.USE_LLM_ASSISTANT:
        raise GenerationError("LLM assistance disabled via USE_LLM_ASSISTANT")
    try:
        text = await _generate(build_description_prompt(title, location, rent, features), "description")
    except GenerationError:
        raise
    except Exception as e:
        logger.warning("Description generation failed", error=mask_sensitive_data(str(e)))
        raise GenerationError(f"Failed to generate description: {e}") from e
    if not text:
        raise GenerationError("Empty description returned")
    return text


async def get_smart_assistance(query: str, context: Optional[str] = None) -> str:
    """Answer a renter/owner question; never raises, falls back to a canned reply."""
    if not query or not query.strip():
        return ASSISTANT_FALLBACK_REPLY
    if not AppConfig.USE_LLM_ASSISTANT:
        return ASSISTANT_FALLBACK_REPLY
    try:
        reply = await _generate(build_assistant_prompt(query.strip(), context), "assistant")
    except Exception as e:
        logger.warning("Smart assistant request failed", error=mask_sensitive_data(str(e)))
        return ASSISTANT_FALLBACK_REPLY
    return reply or ASSISTANT_FALLBACK_REPLY
