"""OpenAI-backed narrative model."""

from __future__ import annotations

import json
from typing import Any, Dict

from openai import AsyncOpenAI

from .base import NarrativeModel
from ..core.config import settings

SYSTEM_PROMPT = (
    "You are an expert real estate appraiser with 20 years of experience in the "
    "Texas market. You provide detailed, accurate, and professional property analyses."
)

EXPECTED_KEYS = {"summary", "strengths", "concerns", "marketPosition", "investmentPotential"}


def _or_unknown(value: Any, suffix: str = "") -> str:
    return f"{value}{suffix}" if value else "Unknown"


def build_prompt(payload: Dict[str, Any]) -> str:
    """Appraiser prompt describing the subject and its comparables."""
    comp_lines = "\n".join(
        f"{i}. {c['address']}\n"
        f"   - Sale Price: ${c['salePrice']:,}\n"
        f"   - Size: {c['sqft']} sq ft | {_or_unknown(c['bedrooms'])}bd/{_or_unknown(c['bathrooms'])}ba\n"
        f"   - Year Built: {_or_unknown(c['yearBuilt'])}\n"
        f"   - Distance: {c['distance']:.2f} miles"
        for i, c in enumerate(payload["comparables"], start=1)
    )
    return (
        "You are a professional real estate appraiser analyzing a property for valuation purposes.\n\n"
        "Property Details:\n"
        f"- Address: {payload['address']}, {payload['city']}, {payload['state']} {payload['zipCode']}\n"
        f"- Property Type: {payload['propertyType']}\n"
        f"- Square Footage: {_or_unknown(payload.get('sqft'))}\n"
        f"- Bedrooms: {_or_unknown(payload.get('bedrooms'))}\n"
        f"- Bathrooms: {_or_unknown(payload.get('bathrooms'))}\n"
        f"- Year Built: {_or_unknown(payload.get('yearBuilt'))}\n"
        f"- Lot Size: {_or_unknown(payload.get('lotSize'), ' sq ft')}\n"
        f"- Estimated Value: ${payload['estimatedValue']:,}\n\n"
        f"Comparable Sales ({len(payload['comparables'])} properties):\n{comp_lines}\n\n"
        "Respond ONLY with valid JSON with the following structure:\n"
        "{\n"
        '  "summary": "A 2-3 sentence executive summary of the property\'s value and market position",\n'
        '  "strengths": ["3-5 key strengths of this property"],\n'
        '  "concerns": ["2-4 potential concerns or risks"],\n'
        '  "marketPosition": "A paragraph describing how this property compares to the local market",\n'
        '  "investmentPotential": "A paragraph about the investment potential and future value trends"\n'
        "}\n\n"
        "Focus on location quality, condition indicators (age, size, features), comparison to "
        "recent sales, market timing and demand, and any red flags or exceptional features."
    )


class OpenAIModel(NarrativeModel):
    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None):
        api_key = settings.OPENAI_API_KEY
        if client is None and not api_key:
            raise RuntimeError("OPENAI_API_KEY missing from settings")
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model or settings.OPENAI_MODEL

    async def analyze_property(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Call OpenAI's chat completion API in JSON mode.

        Parameters
        ----------
        payload: Dict[str, Any]
            Subject property, estimated value and comparables.

        Returns
        -------
        Dict[str, Any]
            Parsed JSON carrying every key in ``EXPECTED_KEYS``.
        """
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(payload)},
            ],
            temperature=0.7,
            max_tokens=1500,
            response_format={"type": "json_object"},
        )
        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise RuntimeError("Empty response from OpenAI")

        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError("Malformed response: expected a JSON object")
        missing = EXPECTED_KEYS.difference(data)
        if missing:
            raise ValueError(f"Malformed response missing keys: {sorted(missing)}")
        return data


def narrative_model() -> NarrativeModel | None:
    """Remote narrative model when configured, otherwise None (rules only)."""
    if settings.NARRATIVE_PROVIDER == "openai" and settings.OPENAI_API_KEY:
        return OpenAIModel()
    return None
