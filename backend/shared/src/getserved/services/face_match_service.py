"""Face-match oracle client.

Asks a vision model behind an OpenAI-compatible chat completions endpoint
whether the face on an ID document matches a selfie. The model is told to
answer with a JSON object; anything that cannot be parsed counts as a
non-match with low confidence.
"""

import json
import logging
import re

import httpx
from pydantic import ValidationError

from getserved.models.verification import FaceMatchVerdict

logger = logging.getLogger(__name__)

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

SYSTEM_PROMPT = """You are an expert identity verification AI. Your task is to compare a face from an ID document with a selfie photo to determine if they are the same person.

Analyze both images carefully and determine:
1. Whether both images clearly show a face
2. Whether the faces appear to be of the same person
3. Your confidence level in the match

Respond with a JSON object in this exact format:
{
  "match": true/false,
  "confidence": "high" | "medium" | "low",
  "reason": "Brief explanation of your assessment",
  "idFaceDetected": true/false,
  "selfieFaceDetected": true/false
}

Be thorough but not overly strict - account for differences in lighting, angle, and image quality."""

USER_PROMPT = (
    "Please compare the face in the ID document (first image) with the selfie "
    "(second image) and determine if they are the same person."
)


class OracleError(Exception):
    """Raised when the oracle call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def parse_verdict(content: str | None) -> FaceMatchVerdict:
    """Extract the verdict JSON from model output, possibly wrapped in markdown."""
    if not content:
        return FaceMatchVerdict.unreadable()

    found = JSON_OBJECT.search(content)
    if not found:
        logger.warning("No JSON found in face-match response")
        return FaceMatchVerdict.unreadable()

    try:
        return FaceMatchVerdict.model_validate(json.loads(found.group(0)))
    except (ValueError, ValidationError) as e:
        logger.warning("Failed to parse face-match response: %s", e)
        return FaceMatchVerdict.unreadable()


class FaceMatchOracle:
    """Client for the face-match model."""

    TIMEOUT_SECONDS = 60.0

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str,
        model: str,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self.model = model
        self._client = httpx.Client(
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.TIMEOUT_SECONDS,
            transport=transport,
        )

    def compare(self, id_document_url: str, selfie_url: str) -> FaceMatchVerdict:
        """Compare the ID document face with the selfie.

        Raises:
            OracleError: on transport failure or a non-2xx response
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": id_document_url}},
                        {"type": "image_url", "image_url": {"url": selfie_url}},
                    ],
                },
            ],
        }

        try:
            response = self._client.post(self.api_url, json=payload)
        except httpx.HTTPError as e:
            raise OracleError(f"Face-match request failed: {e}") from e

        if response.status_code >= 400:
            logger.error("Face-match gateway error: %s %s", response.status_code, response.text)
            raise OracleError(
                f"AI gateway error: {response.status_code}", status_code=response.status_code
            )

        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            logger.warning("Unexpected face-match response shape")
            return FaceMatchVerdict.unreadable()

        return parse_verdict(content)
