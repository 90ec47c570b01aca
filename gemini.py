# gemini.py
# Thin client for the Gemini generateContent REST endpoint. Callers supply a
# prompt, an optional inline image and the pydantic model the JSON reply must match.

import os
import base64
import logging

import requests
from pydantic import ValidationError

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_TIMEOUT = 30


class CompletionError(Exception):
    """The completion call failed or did not return the requested structure."""


class GeminiClient:

    def __init__(self, api_key, model=DEFAULT_MODEL, timeout=DEFAULT_TIMEOUT):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    @classmethod
    def from_env(cls):
        return cls(
            api_key=os.environ.get("GEMINI_API_KEY", ""),
            model=os.environ.get("GEMINI_MODEL", DEFAULT_MODEL),
            timeout=float(os.environ.get("GEMINI_TIMEOUT", DEFAULT_TIMEOUT)),
        )

    @property
    def url(self):
        return f"{GEMINI_API_BASE}/{self.model}:generateContent"

    def build_payload(self, prompt, output_model, image=None, mime_type=None):
        parts = [{"text": prompt}]
        if image is not None:
            parts.append({
                "inline_data": {
                    "mime_type": mime_type or "image/jpeg",
                    "data": base64.b64encode(image).decode('utf-8'),
                }
            })
        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseJsonSchema": output_model.model_json_schema(),
            },
        }

    def generate(self, prompt, output_model, image=None, mime_type=None):
        """
        Runs one completion and returns the reply parsed into `output_model`.

        Raises CompletionError on transport failure or when the reply is not
        JSON matching the model.
        """
        if not self.api_key:
            raise CompletionError("GEMINI_API_KEY is not set")

        payload = self.build_payload(prompt, output_model, image=image, mime_type=mime_type)
        try:
            r = requests.post(self.url, params={"key": self.api_key}, json=payload, timeout=self.timeout)
            r.raise_for_status()
            gemini_data = r.json()
        except requests.RequestException as e:
            logger.error("Gemini request to %s failed: %s", self.model, e)
            raise CompletionError(f"Gemini request failed: {e}") from e
        except ValueError as e:
            raise CompletionError("Gemini response was not JSON") from e

        candidate = (gemini_data.get('candidates') or [{}])[0]
        text = (candidate.get('content', {}).get('parts') or [{}])[0].get('text', '')
        if not text:
            block_reason = gemini_data.get('promptFeedback', {}).get('blockReason')
            if block_reason:
                raise CompletionError(f"Gemini returned no output (blocked: {block_reason})")
            raise CompletionError("Gemini returned no output")

        try:
            return output_model.model_validate_json(text)
        except ValidationError as e:
            if any(err['type'] == 'json_invalid' for err in e.errors()):
                raise CompletionError("Failed to parse JSON from model response") from e
            fields = ", ".join(".".join(str(p) for p in err['loc']) or "output" for err in e.errors())
            raise CompletionError(f"Model output did not match {output_model.__name__}: {fields}") from e
