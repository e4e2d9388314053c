"""Gemini calls: try-on compositing, upscaling, garment description and video.

Image models:

- ``gemini2``   -> ``gemini-2.5-flash-image`` (faster, inputs capped at 1024 px)
- ``geminipro`` -> ``gemini-3-pro-image-preview`` (higher quality, 2048 px, 1K output)

Every image request puts the person photo first, the garment second and the
instructions last; the prompt refers to them as "Image 1" and "Image 2".
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from aiwear.config import load_api_key
from aiwear.images import resize_image

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Model identifiers & knobs

FLASH_IMAGE_MODEL: str = "gemini-2.5-flash-image"
PRO_IMAGE_MODEL: str = "gemini-3-pro-image-preview"
DESCRIBE_MODEL: str = "gemini-2.5-flash"
VIDEO_MODEL: str = "veo-3.1-fast-generate-preview"

ASPECT_RATIO: str = "9:16"
PRO_IMAGE_SIZE: str = "1K"
RETRY_DELAY_SECONDS: float = 2.0
VIDEO_POLL_SECONDS: float = 8.0

TRYON_PROMPT: str = """VIRTUAL TRY-ON - EXACT GARMENT REPLACEMENT ONLY

CRITICAL RULES:
- DO NOT add any clothing items not present in Image 2 (the garment)
- DO NOT add coats, jackets, or accessories beyond what's in Image 2
- DO NOT reinterpret or "enhance" the outfit
- This is a SWAP operation, not a styling session

PERSON (Image 1):
Keep 100% identical: face, skin tone, hair, body pose, background, lighting
Preserve visible items: sunglasses, earrings, jewelry, phone in hand

GARMENT (Image 2):
Use ONLY this item. Copy its exact: color, pattern, fabric texture, cut, sleeve length
If it's a dress, output a dress. If it's a top, output a top. Do not add layers.

REPLACEMENT:
1. Remove the existing outfit from Image 1
2. Place the garment from Image 2 onto the person's body
3. Ensure natural draping that matches their pose
4. Blend skin at neckline/shoulders to match Image 1's skin tone
5. Keep any hand or phone in the foreground, overlapping the new garment

OUTPUT: High-quality editorial photo, studio lighting, photorealistic skin texture."""

UPSCALE_PROMPT: str = """TASK: ENHANCE IMAGE QUALITY

Enhance this fashion photo to ultra-high quality:
- Sharpen facial details and skin texture
- Enhance fabric texture and pattern details
- Improve lighting and color accuracy
- Maintain exact composition and pose
- Output at maximum resolution with photorealistic quality

Do NOT change the person, clothing, or composition. Only enhance quality."""

DESCRIBE_PROMPT: str = """Analyze this garment image. Return JSON only:
{
  "category": "upper_body" | "lower_body" | "one-pieces",
  "description": "Clean 5-10 word description of the garment"
}

If NOT a clear garment image, return: {"error": "INVALID_GARMENT"}"""

FALLBACK_DESCRIPTION: str = '{"category": "one-pieces", "description": "clothing item"}'
INVALID_GARMENT: str = "INVALID_GARMENT"

_FENCE_PATTERN = re.compile(r"```json|```")


def get_client() -> genai.Client:
    return genai.Client(api_key=load_api_key())


def model_for(model_type: str) -> str:
    return PRO_IMAGE_MODEL if model_type == "geminipro" else FLASH_IMAGE_MODEL


def max_dimension_for(model_type: str) -> int:
    return 2048 if model_type == "geminipro" else 1024


def image_config_for(model_type: str) -> genai_types.ImageConfig:
    if model_type == "geminipro":
        return genai_types.ImageConfig(aspect_ratio=ASPECT_RATIO, image_size=PRO_IMAGE_SIZE)
    return genai_types.ImageConfig(aspect_ratio=ASPECT_RATIO)


def build_tryon_prompt(user_prompt: Optional[str] = None) -> str:
    prompt = TRYON_PROMPT
    if user_prompt and user_prompt.strip():
        prompt += f"\n\nSTYLING CONTEXT FROM USER: {user_prompt.strip()}"
    return prompt


# ---------------------------------------------------------------------------
# Request construction & response parsing


def inline_image_part(data: bytes, mime_type: str = "image/jpeg") -> genai_types.Part:
    return genai_types.Part(inline_data=genai_types.Blob(mime_type=mime_type, data=data))


def build_user_content(*, images: Iterable[bytes], prompt_text: str) -> genai_types.Content:
    """Assemble a single ``user`` content block: images in order, then the prompt."""

    stripped_prompt = prompt_text.strip()
    if not stripped_prompt:
        raise ValueError("The prompt could not be empty.")

    parts: List[genai_types.Part] = [inline_image_part(data) for data in images]
    parts.append(genai_types.Part(text=stripped_prompt))
    return genai_types.Content(role="user", parts=parts)


def _first_candidate_parts(response: genai_types.GenerateContentResponse) -> List[genai_types.Part]:
    if not response.candidates:
        raise RuntimeError("No candidates returned from AI model")
    content = response.candidates[0].content
    return list(content.parts or []) if content else []


def extract_inline_image(
    response: genai_types.GenerateContentResponse,
) -> Optional[Tuple[bytes, str]]:
    """Return ``(data, mime_type)`` for the first inline image, if any."""

    for part in _first_candidate_parts(response):
        inline = getattr(part, "inline_data", None)
        if inline and getattr(inline, "data", None):
            return inline.data, getattr(inline, "mime_type", None) or "image/png"
    return None


def extract_text_responses(response: genai_types.GenerateContentResponse) -> List[str]:
    """Collect any textual explanations returned by Gemini."""

    texts: List[str] = []
    for candidate in response.candidates or []:
        content = getattr(candidate, "content", None)
        if not content or not getattr(content, "parts", None):
            continue
        for part in content.parts:
            text = getattr(part, "text", None)
            if text:
                texts.append(text)
    return texts


def _require_image(response: genai_types.GenerateContentResponse) -> Tuple[bytes, str]:
    image = extract_inline_image(response)
    if image:
        return image

    refusal = "".join(extract_text_responses(response))
    if refusal:
        raise RuntimeError(f"AI Refusal: {refusal[:100]}...")
    raise RuntimeError("Neural synthesis failed. No image data returned.")


def _is_server_error(exc: Exception) -> bool:
    return getattr(exc, "code", None) == 500 or "500" in str(exc)


def _generate_image(
    client: genai.Client,
    *,
    model: str,
    content: genai_types.Content,
    image_config: genai_types.ImageConfig,
    retries: int,
) -> Tuple[bytes, str]:
    attempt = 0
    while True:
        try:
            response = client.models.generate_content(
                model=model,
                contents=[content],
                config=genai_types.GenerateContentConfig(
                    response_modalities=["TEXT", "IMAGE"],
                    candidate_count=1,
                    image_config=image_config,
                ),
            )
            return _require_image(response)
        except genai_errors.APIError as exc:
            if attempt >= retries or not _is_server_error(exc):
                raise
            attempt += 1
            logger.warning("Gemini returned a server error, retrying (%d/%d): %s", attempt, retries, exc)
            time.sleep(RETRY_DELAY_SECONDS)


# ---------------------------------------------------------------------------
# Public operations


def virtual_try_on(
    person_image: bytes,
    garment_image: bytes,
    *,
    model_type: str = "gemini2",
    retries: int = 2,
    user_prompt: Optional[str] = None,
    client: Optional[genai.Client] = None,
) -> Tuple[bytes, str]:
    """Composite the garment onto the person and return ``(image_bytes, mime_type)``."""

    client = client or get_client()
    max_dim = max_dimension_for(model_type)
    model = model_for(model_type)
    logger.info("Gemini try-on with %s (max dimension %d px)", model, max_dim)

    content = build_user_content(
        images=[resize_image(person_image, max_dim), resize_image(garment_image, max_dim)],
        prompt_text=build_tryon_prompt(user_prompt),
    )
    return _generate_image(
        client,
        model=model,
        content=content,
        image_config=image_config_for(model_type),
        retries=retries,
    )


def upscale_image(
    image: bytes,
    *,
    retries: int = 2,
    client: Optional[genai.Client] = None,
) -> Tuple[bytes, str]:
    client = client or get_client()
    content = build_user_content(images=[resize_image(image, 2048)], prompt_text=UPSCALE_PROMPT)
    result = _generate_image(
        client,
        model=PRO_IMAGE_MODEL,
        content=content,
        image_config=image_config_for("geminipro"),
        retries=retries,
    )
    logger.info("Upscale complete")
    return result


def describe_garment(image: bytes, *, client: Optional[genai.Client] = None) -> str:
    """Return Gemini's raw JSON-ish description of a garment (category + summary)."""

    client = client or get_client()
    content = build_user_content(images=[resize_image(image, 512)], prompt_text=DESCRIBE_PROMPT)
    response = client.models.generate_content(model=DESCRIBE_MODEL, contents=[content])

    texts = extract_text_responses(response)
    if not texts:
        logger.warning("No text from Gemini garment description, using fallback")
        return FALLBACK_DESCRIPTION
    return texts[0]


def strip_json_fences(text: str) -> str:
    return _FENCE_PATTERN.sub("", text).strip()


@dataclass(slots=True)
class GarmentDescription:
    category: Optional[str]
    description: str
    invalid: bool = False


def parse_garment_description(raw: str) -> GarmentDescription:
    """Interpret :func:`describe_garment` output; unparsable text becomes the description."""

    try:
        parsed = json.loads(strip_json_fences(raw))
    except json.JSONDecodeError:
        logger.warning("Garment description was not JSON, using raw text")
        return GarmentDescription(category=None, description=raw)

    if not isinstance(parsed, dict):
        return GarmentDescription(category=None, description=raw)
    if parsed.get("error") == INVALID_GARMENT:
        return GarmentDescription(category=None, description="", invalid=True)
    return GarmentDescription(
        category=parsed.get("category"),
        description=parsed.get("description") or "",
    )


def animate_try_on(
    image: bytes,
    motion_description: str,
    *,
    on_progress: Optional[Callable[[str], None]] = None,
    client: Optional[genai.Client] = None,
) -> bytes:
    """Turn a try-on still into a short fashion clip and return the video bytes."""

    client = client or get_client()
    progress = on_progress or (lambda message: logger.info(message))

    progress("Initializing fluid physics...")
    operation = client.models.generate_videos(
        model=VIDEO_MODEL,
        prompt=(
            f"Cinematic fashion film. {motion_description}. "
            "The person stands in the exact same environment. "
            "IDENTITY LOCK: The face and hair must remain static and consistent. "
            "PHYSICS: Only the fabric of the dress should move and react naturally."
        ),
        image=genai_types.Image(image_bytes=resize_image(image, 720), mime_type="image/jpeg"),
        config=genai_types.GenerateVideosConfig(
            number_of_videos=1,
            resolution="720p",
            aspect_ratio=ASPECT_RATIO,
        ),
    )

    while not operation.done:
        progress("Rendering neural frames...")
        time.sleep(VIDEO_POLL_SECONDS)
        operation = client.operations.get(operation)

    videos = operation.response.generated_videos if operation.response else None
    if not videos or not videos[0].video:
        raise RuntimeError("Video synthesis failed.")
    return client.files.download(file=videos[0].video)
