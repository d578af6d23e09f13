from __future__ import annotations

from typing import Any

from openai import AzureOpenAI, OpenAI

from walkpad.config import ServerSettings
from walkpad.errors import VisionError

EXTRACTION_PROMPT = (
    "This is a walking pad LED display. Extract all the numbers shown. "
    "Return the numbers in a JSON format with the first number labelled as either time or calories, "
    "the second as speed, and the third as either distance or steps. "
    "Make sure numbers include colons and periods. "
    'Example: {"time": "12:34", "speed": "5.6", "distance": "1.1"} '
    'or {"calories": "1234", "speed": "5.6", "steps": "2345"}. '
    "Return only the JSON object, no additional text."
)


def create_openai_client(settings: ServerSettings) -> OpenAI:
    """Azure OpenAI when an Azure endpoint is configured, plain OpenAI otherwise."""
    if settings.azure_openai_endpoint:
        return AzureOpenAI(
            api_key=settings.openai_api_key,
            azure_endpoint=settings.azure_openai_endpoint,
            api_version=settings.azure_openai_api_version,
            timeout=float(settings.openai_timeout_seconds),
        )
    return OpenAI(api_key=settings.openai_api_key, timeout=float(settings.openai_timeout_seconds))


class VisionClient:
    def __init__(self, client: OpenAI, model: str, prompt: str = EXTRACTION_PROMPT) -> None:
        self.client = client
        self.model = model
        self.prompt = prompt

    def analyze_image(self, image_url: str) -> tuple[str, dict]:
        """Ask the model to read the display at image_url.

        Returns the raw answer text and call metadata (usage, input, output).
        The answer is passed on untouched; it is expected, not guaranteed, to
        be a JSON object.
        """
        messages: list[dict[str, Any]] = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self.prompt},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            },
        ]

        resp = self.client.chat.completions.create(model=self.model, messages=messages)

        choices = getattr(resp, "choices", None) or []
        raw = choices[0].message.content if choices else None
        if not raw or not raw.strip():
            raise VisionError("No response from AI model.")

        usage = {
            "input_tokens": getattr(resp.usage, "prompt_tokens", None),
            "output_tokens": getattr(resp.usage, "completion_tokens", None),
            "total_tokens": getattr(resp.usage, "total_tokens", None),
        }
        input_payload = {"prompt": self.prompt, "model": self.model, "image_url": image_url}
        output_payload = {"raw": raw}

        return raw, {"usage": usage, "input": input_payload, "output": output_payload}
