"""Local try-on run against Gemini, no Supabase account or credits involved.

This module wires together a minimal workflow to:

1. Load your Gemini API key from a ``.env`` file.
2. Pick a person photo from ``data/model`` and a garment from ``data/raw``.
3. Send a try-on request to the selected Gemini image model.
4. Persist the returned image under ``data/samples``.

Update the configuration block just below to experiment with inputs.
"""

from __future__ import annotations

import mimetypes
from datetime import UTC, datetime
from pathlib import Path
from typing import List, Optional

from aiwear.gemini_service import model_for, virtual_try_on
from aiwear.images import guess_mime_type

# ---------------------------------------------------------------------------
# Configuration section – tweak these values before each run.

# Person photo, relative to PERSON_IMAGE_DIR.
PERSON_IMAGE_NAME: str = "person.jpg"

# Garment photo, relative to GARMENT_IMAGE_DIR.
GARMENT_IMAGE_NAME: str = "garment.jpg"

# "gemini2" (fast) or "geminipro" (higher quality).
MODEL_TYPE: str = "gemini2"

# Optional styling notes appended to the try-on prompt.
USER_PROMPT: Optional[str] = None

# Output filename base (timestamp appended automatically).
OUTPUT_BASE_NAME: str = "tryon"

# ---------------------------------------------------------------------------
# Derived paths.

PROJECT_ROOT: Path = Path(__file__).resolve().parents[2]
PERSON_IMAGE_DIR: Path = PROJECT_ROOT / "data" / "model"
GARMENT_IMAGE_DIR: Path = PROJECT_ROOT / "data" / "raw"
SAMPLE_IMAGE_DIR: Path = PROJECT_ROOT / "data" / "samples"


def resolve_image_path(directory: Path, name: str, label: str) -> Path:
    if not directory.exists():
        raise FileNotFoundError(f"{label} directory '{directory}' does not exist.")
    if not name:
        raise ValueError(f"{label} file name is empty. Set it in the configuration block.")

    path = directory / name
    if not path.exists():
        available = ", ".join(p.name for p in directory.iterdir() if p.is_file()) or "<none>"
        raise FileNotFoundError(
            f"{label} '{name}' was not found in '{directory}'. Available files: {available}"
        )
    guess_mime_type(path)
    return path


def save_image(data: bytes, mime_type: str, output_dir: Path, base_name: str) -> Path:
    """Write ``data`` under ``output_dir`` with a timestamped, MIME-derived filename."""

    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    extension = mimetypes.guess_extension(mime_type) or ".png"
    target_path = output_dir / f"{base_name or 'tryon'}_{timestamp}{extension}"
    target_path.write_bytes(data)
    return target_path


def run_local_try_on() -> List[Path]:
    """Top-level helper that executes the end-to-end try-on workflow."""

    person_path = resolve_image_path(PERSON_IMAGE_DIR, PERSON_IMAGE_NAME, "Person image")
    garment_path = resolve_image_path(GARMENT_IMAGE_DIR, GARMENT_IMAGE_NAME, "Garment image")

    print("🧍 Person image:")
    print(f"  - {person_path.relative_to(PROJECT_ROOT)}")
    print("👗 Garment image:")
    print(f"  - {garment_path.relative_to(PROJECT_ROOT)}")
    print(f"🚀 Running try-on with {model_for(MODEL_TYPE)}")

    image, mime_type = virtual_try_on(
        person_path.read_bytes(),
        garment_path.read_bytes(),
        model_type=MODEL_TYPE,
        user_prompt=USER_PROMPT,
    )
    output_path = save_image(image, mime_type, SAMPLE_IMAGE_DIR, OUTPUT_BASE_NAME)

    print("✅ Gemini returned the following try-on:")
    print(f"  - {output_path.relative_to(PROJECT_ROOT)}")
    return [output_path]


def main() -> None:
    """CLI entry-point used when running this module directly."""

    try:
        run_local_try_on()
    except Exception as exc:  # noqa: BLE001 - surface helpful message to newcomers.
        print(f"❌ {exc}")


if __name__ == "__main__":
    main()
