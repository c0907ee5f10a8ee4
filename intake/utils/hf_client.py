"""
HuggingFace Client - Local model backend for the language model service

Responsibilities:
- Load a local causal LM (optionally 4-bit quantized)
- Render chat messages with the tokenizer's chat template
- Generate text and JSON-object completions (with repair)
- Bound generation time (max_time) so a slow model cannot hang a turn
- Wrap generation failures in LLMError

Design principles:
- Dependency injection (no singleton)
- Fail fast on load errors (CUDA missing, OOM)
- Same generate/generate_json surface as ChatClient
"""

import logging
import time
from typing import Any, Dict, List, Optional

import torch
from transformers import (
    AutoModelForCausalLM,
    AutoTokenizer,
    BitsAndBytesConfig
)

from intake.utils.llm_client import LLMError, parse_json_object, DEFAULT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

DEVICE_CUDA = "cuda"
DEVICE_CPU = "cpu"
DEVICE_MAP_AUTO = "auto"


def render_messages_fallback(messages: List[Dict[str, str]]) -> str:
    """
    Render chat messages for tokenizers without a chat template

    Uses the [INST] convention understood by Mistral/Llama-2 style models.
    System messages are folded into the first instruction.
    """
    system_parts = [m['content'] for m in messages if m['role'] == 'system']
    rendered = []
    pending_system = "\n\n".join(system_parts)

    for message in messages:
        if message['role'] == 'system':
            continue
        if message['role'] == 'user':
            content = message['content']
            if pending_system:
                content = f"{pending_system}\n\n{content}"
                pending_system = ""
            rendered.append(f"[INST] {content} [/INST]")
        else:
            rendered.append(message['content'])

    return "\n".join(rendered)


class HuggingFaceClient:
    """Wrapper for local HuggingFace model inference"""

    def __init__(
        self,
        model_name: str,
        load_in_4bit: bool = True,
        device: str = DEVICE_CUDA,
        timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> None:
        """
        Initialize model and tokenizer

        Args:
            model_name: HuggingFace model identifier
            load_in_4bit: Use 4-bit quantization (CUDA only)
            device: "cuda" or "cpu"
            timeout: Upper bound in seconds for one generation

        Raises:
            RuntimeError: If CUDA requested but not available
            Exception: If model loading fails
        """
        self.model_name = model_name
        self.device = device
        self.timeout = timeout
        self.provider = "huggingface"

        if device == DEVICE_CUDA and not torch.cuda.is_available():
            raise RuntimeError("CUDA requested but not available. Check nvidia-smi.")

        logger.info(f"Loading model: {model_name}")
        logger.info(f"4-bit quantization: {load_in_4bit}, device: {device}")

        quantization_config = None
        if load_in_4bit and device == DEVICE_CUDA:
            quantization_config = BitsAndBytesConfig(
                load_in_4bit=True,
                bnb_4bit_quant_type="nf4",
                bnb_4bit_compute_dtype=torch.bfloat16,
                bnb_4bit_use_double_quant=True
            )
            logger.info("Using NF4 quantization with bfloat16 compute")

        try:
            self.tokenizer = AutoTokenizer.from_pretrained(model_name)
            if self.tokenizer.pad_token is None:
                if self.tokenizer.eos_token is not None:
                    self.tokenizer.pad_token = self.tokenizer.eos_token
                    logger.info("Set pad_token to eos_token")
                else:
                    self.tokenizer.add_special_tokens({'pad_token': '[PAD]'})
                    logger.warning("Added new [PAD] token as pad_token")
        except Exception as e:
            logger.error(f"Failed to load tokenizer: {e}")
            raise

        self.has_chat_template = getattr(self.tokenizer, 'chat_template', None) is not None

        try:
            self.model = AutoModelForCausalLM.from_pretrained(
                model_name,
                quantization_config=quantization_config,
                device_map=DEVICE_MAP_AUTO if device == DEVICE_CUDA else None,
                torch_dtype=torch.bfloat16 if device == DEVICE_CUDA else torch.float32
            )
        except torch.cuda.OutOfMemoryError:
            logger.error("CUDA Out of Memory during model loading")
            raise
        except Exception as e:
            logger.error(f"Failed to load model: {e}")
            raise

        self.model.eval()
        logger.info("HuggingFace client initialized successfully")

    def is_loaded(self) -> bool:
        return getattr(self, 'model', None) is not None and getattr(self, 'tokenizer', None) is not None

    def _render(self, messages: List[Dict[str, str]]) -> str:
        if self.has_chat_template:
            return self.tokenizer.apply_chat_template(
                messages,
                tokenize=False,
                add_generation_prompt=True
            )
        return render_messages_fallback(messages)

    def generate(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 512,
        temperature: float = 0.3,
        json_mode: bool = False
    ) -> str:
        """
        Generate a completion for chat messages

        json_mode is accepted for interface parity; local models are steered
        to JSON by the prompt and repaired afterwards.

        Raises:
            LLMError: If the model is not loaded, runs out of memory, or
                returns nothing
        """
        if not self.is_loaded():
            raise LLMError("Model not loaded")

        start_time = time.time()
        prompt = self._render(messages)

        inputs = self.tokenizer(prompt, return_tensors="pt")
        if self.device == DEVICE_CUDA:
            inputs = inputs.to(DEVICE_CUDA)
        prompt_tokens = inputs.input_ids.shape[1]

        try:
            with torch.no_grad():
                outputs = self.model.generate(
                    inputs.input_ids,
                    attention_mask=inputs.attention_mask,
                    max_new_tokens=max_tokens,
                    temperature=temperature if temperature > 0 else None,
                    do_sample=temperature > 0,
                    max_time=self.timeout,
                    pad_token_id=self.tokenizer.pad_token_id
                )
        except torch.cuda.OutOfMemoryError as e:
            logger.error(f"CUDA OOM during generation (prompt tokens: {prompt_tokens})")
            raise LLMError("Local model ran out of GPU memory") from e
        except RuntimeError as e:
            logger.error(f"Local generation failed: {e}")
            raise LLMError(f"Local generation failed: {e}") from e

        generated_ids = outputs[0][prompt_tokens:]
        text = self.tokenizer.decode(generated_ids, skip_special_tokens=True).strip()

        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(f"Local completion took {elapsed_ms:.0f}ms ({prompt_tokens} prompt tokens)")

        if not text:
            raise LLMError("Local model returned an empty response")
        return text

    def generate_json(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 512,
        temperature: float = 0.0
    ) -> Dict[str, Any]:
        """
        Generate and parse a JSON object (with brace repair)

        Raises:
            LLMError: On generation failure or unparseable output
        """
        text = self.generate(messages, max_tokens=max_tokens, temperature=temperature, json_mode=True)
        return parse_json_object(text)

    def check_connection(self) -> bool:
        return self.is_loaded()

    def get_model_info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            'provider': self.provider,
            'model_name': self.model_name,
            'device': self.device,
            'timeout': self.timeout,
            'is_loaded': self.is_loaded(),
        }
        if self.device == DEVICE_CUDA and torch.cuda.is_available():
            info['gpu_memory_allocated_gb'] = torch.cuda.memory_allocated() / 1e9
        return info
