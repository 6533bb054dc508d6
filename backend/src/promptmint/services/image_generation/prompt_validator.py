"""Server-side prompt validation for image generation.

Validates text prompts before sending them to Replicate.
"""

from promptmint.services.exceptions import PromptRejectedError

MAX_PROMPT_LENGTH = 1000

FORBIDDEN_TERMS = ("nsfw", "explicit", "violence", "hate")


def validate_prompt(prompt: str) -> str:
    """Validate prompt text for image generation.

    Args:
        prompt: Text prompt submitted by the client

    Returns:
        Validated prompt (unchanged if valid)

    Raises:
        PromptRejectedError: If prompt is missing, blank, longer than 1000
            characters, or contains a denylisted term
    """
    if prompt is None or not isinstance(prompt, str):
        raise PromptRejectedError("Prompt is required and must be a string")

    if not prompt.strip():
        raise PromptRejectedError("Prompt cannot be empty")

    if len(prompt) > MAX_PROMPT_LENGTH:
        raise PromptRejectedError(f"Prompt must be less than {MAX_PROMPT_LENGTH} characters")

    lowered = prompt.lower()
    if any(term in lowered for term in FORBIDDEN_TERMS):
        raise PromptRejectedError("Prompt contains inappropriate content")

    return prompt
