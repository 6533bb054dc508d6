"""Workflow orchestrators driving the generation and minting state machines."""

from promptmint.orchestrators.generation import GenerationOrchestrator, validate_prompt
from promptmint.orchestrators.minting import MintingOrchestrator, prompt_hash

__all__ = [
    "GenerationOrchestrator",
    "MintingOrchestrator",
    "validate_prompt",
    "prompt_hash",
]
