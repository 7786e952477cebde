"""Model call service built on LangChain chains, plus JSON response parsing."""

import json
import re
from typing import Any, Optional, Protocol

import structlog
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable

from got_pipeline.config.prompts import JSON_ONLY_INSTRUCTION, SYSTEM_PROMPT
from got_pipeline.errors import MalformedResponseError, ModelCallError
from got_pipeline.extraction.chunker import ChunkingConfig, split_prompt
from got_pipeline.llm.client import create_llm_client
from got_pipeline.models.context import Credentials
from got_pipeline.models.enums import Capability

logger = structlog.get_logger(__name__)

CAPABILITY_INSTRUCTIONS = {
    Capability.SEARCH_GROUNDING: "Ground every claim in published sources and name them.",
    Capability.STRUCTURED_OUTPUT: JSON_ONLY_INSTRUCTION,
    Capability.CODE_EXECUTION: "Show any calculation you rely on.",
    Capability.FUNCTION_CALLING: "Describe any tool you would call and its arguments.",
}


class ModelCallService(Protocol):
    """Prompt in, text out. Raises ModelCallError on transport or quota failure."""

    def call(
        self,
        prompt: str,
        credentials: Credentials,
        capability: Optional[Capability] = None,
        schema: Optional[dict[str, Any]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        ...


def _extract_json_from_text(text: str) -> str | None:
    """Try to extract JSON object from text that may contain other content.

    Args:
        text: Text that may contain JSON.

    Returns:
        Extracted JSON string or None.
    """
    brace_count = 0
    start_idx = None
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        # Braces inside strings do not count
        if escape_next:
            escape_next = False
            continue
        if char == '\\' and in_string:
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char == '{':
            if brace_count == 0:
                start_idx = i
            brace_count += 1
        elif char == '}' and brace_count > 0:
            brace_count -= 1
            if brace_count == 0 and start_idx is not None:
                return text[start_idx:i + 1]

    return None


def _clean_json_string(text: str) -> str:
    """Clean common issues in JSON strings from LLM output.

    Args:
        text: Raw JSON string.

    Returns:
        Cleaned JSON string.
    """
    text = text.strip('\ufeff\u200b\u200c\u200d')

    # Remove trailing commas before } or ] (invalid JSON but common LLM mistake)
    text = re.sub(r',(\s*[}\]])', r'\1', text)

    return text


def parse_json_response(response: Optional[str]) -> dict[str, Any]:
    """Parse a JSON object from model output.

    Handles markdown code blocks, reasoning text before the object and
    trailing commas.

    Args:
        response: Raw model response.

    Returns:
        Parsed JSON dict.

    Raises:
        MalformedResponseError: If no JSON object can be recovered.
    """
    if not response or not response.strip():
        raise MalformedResponseError("Empty response from model")

    text = response.strip()

    match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text, re.IGNORECASE)
    if match and match.group(1).strip().startswith('{'):
        text = match.group(1).strip()

    try:
        parsed = json.loads(_clean_json_string(text))
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError as e:
        logger.debug("direct_parse_failed", error=str(e))

    extracted = _extract_json_from_text(text)
    if extracted:
        try:
            parsed = json.loads(_clean_json_string(extracted))
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError as e:
            logger.debug("extracted_parse_failed", error=str(e))

    raise MalformedResponseError(
        f"Failed to parse model JSON response. Response preview: {text[:150]}"
    )


class LangChainModelService:
    """ModelCallService backed by a `prompt | llm | parser` chain.

    Prompts above the chunking threshold are split and each chunk is invoked
    independently; a failed chunk becomes an inline
    `[Error processing chunk N: message]` marker instead of failing the call.
    """

    def __init__(
        self,
        llm: Optional[Runnable] = None,
        chunking: Optional[ChunkingConfig] = None,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self._llm = llm
        self.chunking = chunking or ChunkingConfig()
        self.system_prompt = system_prompt

    @property
    def llm(self) -> Runnable:
        if self._llm is None:
            self._llm = create_llm_client(prompt_tokens=self.chunking.threshold_tokens)
        return self._llm

    def call(
        self,
        prompt: str,
        credentials: Credentials,
        capability: Optional[Capability] = None,
        schema: Optional[dict[str, Any]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        system = self._system_message(capability, schema)
        chunks = split_prompt(prompt, self.chunking)

        if len(chunks) <= 1:
            return self._invoke(system, prompt, options)

        logger.info("model_call_chunked", chunks=len(chunks), capability=getattr(capability, "value", None))
        parts = []
        for chunk in chunks:
            try:
                parts.append(self._invoke(system, chunk.text, options))
            except ModelCallError as e:
                logger.warning("chunk_failed", chunk=chunk.index + 1, error=str(e))
                parts.append(f"[Error processing chunk {chunk.index + 1}: {e}]")
        return "\n\n".join(parts)

    def _system_message(
        self, capability: Optional[Capability], schema: Optional[dict[str, Any]]
    ) -> str:
        parts = [self.system_prompt]
        if capability in CAPABILITY_INSTRUCTIONS:
            parts.append(CAPABILITY_INSTRUCTIONS[capability])
        if schema:
            parts.append("The JSON must conform to this schema:\n" + json.dumps(schema, indent=2))
        return "\n".join(parts)

    def _invoke(self, system: str, text: str, options: Optional[dict[str, Any]]) -> str:
        template = ChatPromptTemplate.from_messages([
            ("system", "{system}"),
            ("human", "{prompt}"),
        ])
        chain = template | self.llm | StrOutputParser()

        try:
            response = chain.invoke(
                {"system": system, "prompt": text},
                config={"metadata": dict(options or {})},
            )
        except Exception as e:
            raise ModelCallError(f"Model call failed: {e}") from e

        if not response or not response.strip():
            raise ModelCallError("Empty response from model")

        logger.debug("model_call_complete", response_length=len(response))
        return response
