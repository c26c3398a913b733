"""LLM utilities for the planner, re-planner and summarizer"""

import os
from typing import Any, Dict

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import AzureChatOpenAI

from src.utils.config import get_llm_config
from src.utils.logging.framework import SmartLogger

logger = SmartLogger("system")


def create_azure_openai_chat(**kwargs) -> AzureChatOpenAI:
    """Create Azure OpenAI chat instance using global config.

    Args:
        **kwargs: Optional overrides for LLM configuration

    Returns:
        Configured AzureChatOpenAI instance
    """
    llm_config = get_llm_config()
    llm_kwargs: Dict[str, Any] = {
        "azure_endpoint": os.environ.get("AZURE_OPENAI_ENDPOINT"),
        "azure_deployment": os.environ.get("AZURE_OPENAI_CHAT_DEPLOYMENT_NAME") or llm_config.azure_deployment,
        "openai_api_version": os.environ.get("AZURE_OPENAI_API_VERSION") or llm_config.api_version,
        "openai_api_key": os.environ.get("AZURE_OPENAI_API_KEY"),
        "temperature": llm_config.temperature,
        "max_tokens": llm_config.max_tokens,
        "timeout": llm_config.timeout,
    }
    llm_kwargs.update(kwargs)

    if not llm_kwargs.get("azure_endpoint"):
        raise ValueError("AZURE_OPENAI_ENDPOINT environment variable is required")
    if not llm_kwargs.get("openai_api_key"):
        raise ValueError("AZURE_OPENAI_API_KEY environment variable is required")

    logger.info("creating_llm_instance",
                deployment=llm_kwargs.get("azure_deployment"),
                temperature=llm_kwargs.get("temperature"),
                max_tokens=llm_kwargs.get("max_tokens"))

    return AzureChatOpenAI(**llm_kwargs)


def message_text(content: Any) -> str:
    """Flatten a chat message ``content`` (string or list of content blocks) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


async def generate_text(llm: BaseChatModel, system_prompt: str, prompt: str) -> str:
    """Single-turn text generation: system instruction plus one user prompt."""
    response = await llm.ainvoke([
        SystemMessage(content=system_prompt),
        HumanMessage(content=prompt),
    ])
    return message_text(response.content)


__all__ = [
    "create_azure_openai_chat",
    "generate_text",
    "message_text",
]
