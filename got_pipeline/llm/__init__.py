"""LLM client and model call service."""

from .client import LLMSettings, create_llm_client
from .chains import LangChainModelService, ModelCallService, parse_json_response

__all__ = [
    "LLMSettings",
    "create_llm_client",
    "LangChainModelService",
    "ModelCallService",
    "parse_json_response",
]
