"""
Request schemas for the API.

These define the expected input structure for API endpoints.
"""

from typing import Optional

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    """Request to open a research session with model provider credentials."""
    gemini: Optional[str] = Field(None, description="Gemini API key")
    perplexity: Optional[str] = Field(None, description="Perplexity API key")
    openai: Optional[str] = Field(None, description="OpenAI API key")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"gemini": "your-gemini-key", "perplexity": "your-perplexity-key"}
            ]
        }
    }


class ExecuteStageRequest(BaseModel):
    """Request to execute one stage. Stage 1 requires a query."""
    query: Optional[str] = Field(None, description="Research question (required for stage 1)")
