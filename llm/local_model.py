"""
Local causal LM used by the safety assistant.

Weights load lazily on the first generate() call. A LoRA adapter is attached
when USE_LORA is set.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

from transformers import AutoModelForCausalLM, AutoTokenizer
from peft import PeftModel

from .config import LLMConfig, LORA_PATH, USE_LORA

logger = logging.getLogger("llm")


def _pick_device() -> str:
    try:
        import torch
    except ImportError:
        return "cpu"
    return "cuda" if torch.cuda.is_available() else "cpu"


@dataclass
class LocalTextModel:
    """
    Greedy text generator over a local checkpoint.

    generate() returns the completion only; the echoed prompt is stripped.
    """

    config: LLMConfig
    _tokenizer: Optional[AutoTokenizer] = None
    _model: Optional[AutoModelForCausalLM] = None

    @property
    def loaded(self) -> bool:
        return self._model is not None and self._tokenizer is not None

    def load(self) -> None:
        if self.loaded:
            return
        device = _pick_device()
        source: Dict[str, Any] = {"local_files_only": self.config.local_files_only}

        logger.info("Loading assistant model %s on %s", self.config.model_path, device)
        self._tokenizer = AutoTokenizer.from_pretrained(self.config.model_path, **source)
        model = AutoModelForCausalLM.from_pretrained(self.config.model_path, **source)
        if USE_LORA:
            logger.info("Attaching LoRA adapter from %s", LORA_PATH)
            model = PeftModel.from_pretrained(model, LORA_PATH, is_trainable=False, **source)

        model.to(device)
        model.eval()
        self._model = model

    def _context_window(self) -> int:
        model_config = self._model.config
        positions = getattr(model_config, "n_positions", None) or getattr(
            model_config, "max_position_embeddings", None
        )
        limit = self._tokenizer.model_max_length
        return min(limit, positions) if positions else limit

    def generate(self, prompt: str) -> str:
        if not self.loaded:
            self.load()

        window = self._context_window()
        budget = window - self.config.max_new_tokens
        encoded = self._tokenizer(
            prompt,
            return_tensors="pt",
            truncation=True,
            max_length=budget if budget > 0 else window,
        ).to(self._model.device)

        prompt_len = encoded["input_ids"].shape[1]
        new_tokens = max(1, min(self.config.max_new_tokens, window - prompt_len))
        output = self._model.generate(
            **encoded,
            max_new_tokens=new_tokens,
            repetition_penalty=self.config.repetition_penalty,
            do_sample=False,
            eos_token_id=self._tokenizer.eos_token_id,
            pad_token_id=self._tokenizer.eos_token_id,
        )
        return self._tokenizer.decode(output[0][prompt_len:], skip_special_tokens=True).strip()
