"""Fal.ai calls: IDM-VTON try-on, the category router and the studio upscaler.

Pipeline for the ``fal`` model type:

1. Upload both images to Fal storage (public URLs are passed straight through).
2. Resolve the garment category, asking LLaVA when the caller has none.
3. Run IDM-VTON at the resolution of the requested quality tier.
4. For studio quality, the caller may run :func:`enhance_to_studio` on the result.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Tuple

import fal_client

from aiwear.config import load_fal_key
from aiwear.images import decode_data_url, is_data_url

logger = logging.getLogger(__name__)

TRYON_ENDPOINT: str = "fal-ai/idm-vton"
ROUTER_ENDPOINT: str = "fal-ai/llava-next"
UPSCALER_ENDPOINT: str = "fal-ai/flux-vision-upscaler"

VALID_CATEGORIES = ("tops", "bottoms", "one-pieces")
SAFE_CATEGORY: str = "one-pieces"

# IDM-VTON expects upper_body / lower_body / dresses.
CATEGORY_MAPPING: Dict[str, str] = {
    "tops": "upper_body",
    "bottoms": "lower_body",
    "one-pieces": "dresses",
    "upper_body": "upper_body",
    "lower_body": "lower_body",
    "dresses": "dresses",
}

# (width, height, inference steps); both tiers keep the 9:16 body proportions.
QUALITY_SETTINGS: Dict[str, Tuple[int, int, int]] = {
    "standard": (768, 1365, 30),
    "studio": (1024, 1820, 50),
}


def _output_text(result: Dict[str, Any]) -> str:
    return str(result.get("output") or "").lower()


def detect_clothing_category(garment_url: str) -> str:
    """Return ``one-pieces`` for garments worn by a model, else the detected category.

    Any router failure falls back to ``one-pieces``, the category least likely
    to produce glitches.
    """

    try:
        presence = fal_client.run(
            ROUTER_ENDPOINT,
            arguments={
                "image_url": garment_url,
                "prompt": "Is there a person or model visible in this image? Answer only 'yes' or 'no'.",
            },
        )
        if "yes" in _output_text(presence):
            logger.info("Detected garment on model, using %s", SAFE_CATEGORY)
            return SAFE_CATEGORY

        classified = fal_client.run(
            ROUTER_ENDPOINT,
            arguments={
                "image_url": garment_url,
                "prompt": (
                    "Classify this clothing item into exactly one of these categories: "
                    "'tops', 'bottoms', or 'one-pieces'. Return only the word."
                ),
            },
        )
        category = _output_text(classified).strip().replace(".", "")
        detected = category if category in VALID_CATEGORIES else "tops"
        logger.info("Detected clothing only, category: %s", detected)
        return detected
    except Exception as exc:  # noqa: BLE001 - the router is advisory.
        logger.warning("Router failed, defaulting to %s: %s", SAFE_CATEGORY, exc)
        return SAFE_CATEGORY


def upload_image(source: str) -> str:
    """Upload a data URL to Fal storage and return its URL; http(s) URLs pass through."""

    if source.startswith(("http://", "https://")):
        return source
    if not is_data_url(source):
        raise ValueError("Expected an image data URL or an http(s) URL.")

    data, mime_type = decode_data_url(source)
    return fal_client.upload(
        data,
        content_type=mime_type,
        file_name=f"upload_{uuid.uuid4().hex[:8]}.jpg",
    )


def enhance_to_studio(image_url: str) -> str:
    """Second pass sharpening eyes, skin and fabric; the input URL on any failure."""

    try:
        load_fal_key()
        logger.info("Studio pass: enhancing texture and resolution")
        result = fal_client.subscribe(
            UPSCALER_ENDPOINT,
            arguments={
                "image_url": image_url,
                "upscale_factor": 2,
                "creativity": 0.1,
                "guidance": 1.5,
                "steps": 20,
            },
            with_logs=True,
        )
    except Exception as exc:  # noqa: BLE001 - the standard result is still usable.
        logger.warning("Studio enhancement failed, returning standard result: %s", exc)
        return image_url

    enhanced = (result.get("image") or {}).get("url")
    if not enhanced:
        logger.warning("Studio enhancement returned no image, returning original")
        return image_url
    return enhanced


def resolve_fal_category(category: str, garment_url: str) -> str:
    """Map a caller or Gemini category onto the IDM-VTON vocabulary."""

    if category in VALID_CATEGORIES:
        logger.info("Pre-set category used: %s (skipping auto-detection)", category)
        internal = category
    else:
        detected = detect_clothing_category(garment_url)
        internal = SAFE_CATEGORY if detected == SAFE_CATEGORY else category
    return CATEGORY_MAPPING.get(internal, "dresses")


def _log_queue_update(update: Any) -> None:
    if isinstance(update, fal_client.InProgress):
        for entry in update.logs or []:
            logger.info("fal.ai processing: %s", entry.get("message"))


def virtual_try_on(
    person_image: str,
    garment_image: str,
    *,
    description: str,
    category: str,
    quality: str = "standard",
) -> str:
    """Run IDM-VTON and return the URL of the generated image."""

    load_fal_key()
    person_url = upload_image(person_image)
    garment_url = upload_image(garment_image)

    final_category = resolve_fal_category(category, garment_url)
    width, height, steps = QUALITY_SETTINGS.get(quality, QUALITY_SETTINGS["standard"])
    logger.info(
        "Using %s | quality=%s | %dx%d | category=%s",
        TRYON_ENDPOINT,
        quality,
        width,
        height,
        final_category,
    )

    result = fal_client.subscribe(
        TRYON_ENDPOINT,
        arguments={
            "human_image_url": person_url,
            "garment_image_url": garment_url,
            "description": description,
            "category": final_category,
            "garment_photo_type": "model",
            "width": width,
            "height": height,
            "num_inference_steps": steps,
            "guidance_scale": 2.0,
            "seed": 42,
            "output_format": "png",
        },
        with_logs=True,
        on_queue_update=_log_queue_update,
    )

    image_url = ((result or {}).get("image") or {}).get("url")
    if not image_url:
        raise RuntimeError("No image returned from fal.ai")
    return image_url
