"""Wardrobe item categorization with Gemini vision."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from google import genai
from google.genai import errors as genai_errors

from aiwear.config import load_api_key
from aiwear.gemini_service import build_user_content, extract_text_responses, strip_json_fences
from aiwear.images import resize_image
from aiwear.wardrobe_service import CATEGORY_GROUPS, category_group_for

logger = logging.getLogger(__name__)

CATEGORIZE_MODEL: str = "gemini-2.0-flash"

CATEGORY_PROMPT: str = """You are a fashion item categorizer. Analyze this image and categorize it.

Return ONLY a JSON object with these exact fields:
{
  "category": "<one of: tops, bottoms, dresses, outerwear, bags, glasses, jewelry, hats, scarves, heels, flats, sneakers, boots>",
  "categoryGroup": "<one of: clothing, accessories, footwear>",
  "confidence": <0.0 to 1.0>,
  "suggestedName": "<short descriptive name like 'Red Silk Dress' or 'Black Leather Bag'>"
}

Category mappings:
- clothing: tops, bottoms, dresses, outerwear
- accessories: bags, glasses, jewelry, hats, scarves
- footwear: heels, flats, sneakers, boots

If the image is NOT a fashion item (person photo, random object, etc), return:
{
  "category": "unknown",
  "categoryGroup": "clothing",
  "confidence": 0,
  "suggestedName": "Unknown Item"
}

Return ONLY the JSON, no other text."""

CATEGORY_LABELS: Dict[str, str] = {
    "tops": "Tops",
    "bottoms": "Bottoms",
    "dresses": "Dresses",
    "outerwear": "Outerwear",
    "bags": "Bags",
    "glasses": "Glasses",
    "jewelry": "Jewelry",
    "hats": "Hats",
    "scarves": "Scarves",
    "heels": "Heels",
    "flats": "Flats",
    "sneakers": "Sneakers",
    "boots": "Boots",
}


@dataclass(slots=True)
class CategoryResult:
    category: str
    category_group: str
    confidence: float
    suggested_name: str


def default_result() -> CategoryResult:
    return CategoryResult(
        category="tops", category_group="clothing", confidence=0.0, suggested_name="New Item"
    )


def get_category_group(category: str) -> str:
    return category_group_for(category)


def all_categories() -> List[Tuple[str, str, str]]:
    """``(group, id, label)`` for every category, grouped in display order."""

    return [
        (group, category, CATEGORY_LABELS[category])
        for group, categories in CATEGORY_GROUPS.items()
        for category in categories
    ]


def categorize_item(image: bytes, *, client: Optional[genai.Client] = None) -> CategoryResult:
    """Ask Gemini what kind of item ``image`` shows; defaults on any failure."""

    if client is None:
        try:
            client = genai.Client(api_key=load_api_key())
        except RuntimeError:
            logger.warning("Gemini API key not configured, using default category")
            return default_result()

    content = build_user_content(images=[resize_image(image, 1024)], prompt_text=CATEGORY_PROMPT)
    try:
        response = client.models.generate_content(model=CATEGORIZE_MODEL, contents=[content])
        parsed = json.loads(strip_json_fences("".join(extract_text_responses(response))))
    except (genai_errors.APIError, json.JSONDecodeError, RuntimeError) as exc:
        logger.error("AI categorization failed: %s", exc)
        return default_result()

    if not isinstance(parsed, dict):
        return default_result()

    confidence = parsed.get("confidence")
    return CategoryResult(
        category=parsed.get("category") or "tops",
        category_group=parsed.get("categoryGroup") or "clothing",
        confidence=float(confidence) if confidence is not None else 0.5,
        suggested_name=parsed.get("suggestedName") or "New Item",
    )

