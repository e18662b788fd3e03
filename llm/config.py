"""
Configuration for local text generation.

Used only for incident explanation and summaries, never for detection.
"""

from __future__ import annotations

import os

from pathlib import Path

from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """
    Configuration for the local causal language model.

    Notes:
    - model_path may be a local directory or a hub id; local paths load offline.
    - decoding is greedy (do_sample=False) for stable answers.
    - max_new_tokens is small: answers are short operator-facing text.
    """

    model_path: str = Field(..., description="Local filesystem path or hub id")
    max_new_tokens: int = Field(384, ge=32, le=2048)
    repetition_penalty: float = Field(1.05, ge=1.0, le=2.0)
    local_files_only: bool = False

    def model_post_init(self, __context: object) -> None:
        path = Path(self.model_path)
        if path.exists():
            self.local_files_only = True


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# LoRA inference toggle
USE_LORA = _parse_bool(os.getenv("USE_LORA"), False)
LORA_PATH = os.getenv("LORA_PATH", "llm/models/lora")
