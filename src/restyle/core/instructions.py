"""Instruction templates sent to the multimodal gateway.

Each gateway operation sends one fixed instruction with a small variable
part spliced in.  The fixed requirement blocks are constants rather than
configuration because they are the guarantees the service makes to its
users: an edit never touches the person, only their clothing.

Edit Instruction Structure::

    Edit the provided image by changing only the clothing to: [cleaned prompt].

    Strict requirements:
    - [identity / pose / body shape]
    - [background / composition / lighting]
    - [untouched regions]
    - [coverage]
    - [photorealism]

Usage
-----
::

    instruction = build_edit_instruction(sanitize(prompt).cleaned_prompt)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

# ---------------------------------------------------------------------------
# Fixed requirement blocks.
# ---------------------------------------------------------------------------

_EDIT_REQUIREMENTS = (
    "- Preserve the person's exact identity (face, skin tone, hair), pose, body shape, "
    "and proportions",
    "- Preserve the background, objects, composition, camera angle, and lighting",
    "- Do not alter face, hair, skin, tattoos, accessories, hands, or environment",
    "- No nudity or sexually explicit content; use opaque fabrics and appropriate coverage",
    "- Photorealistic result consistent with the original image",
)

_TRY_ON_REQUIREMENTS = (
    "1. Create a realistic mannequin or model with the specified body type",
    "2. Place the clothing item naturally on the body, respecting fabric physics and fit",
    "3. Maintain realistic proportions and shadows",
    "4. Ensure the clothing looks like it's actually being worn",
    "5. Professional fashion photography style",
    "6. Clean, well-lit background",
)

ANALYSIS_INSTRUCTION = (
    "Analyze this image and list all clothing items visible on people. Return only a "
    "comma-separated list of clothing items. Be specific about colors and types. For "
    'example: "blue jeans, white t-shirt, black sneakers, red jacket"'
)

BODY_TYPES: dict[str, str] = {
    "athletic": "athletic, fit body with toned muscles",
    "slim": "slim, lean body type",
    "average": "average, medium body build",
    "plus": "plus-size, curvy body type",
    "petite": "petite, small frame body type",
}

POSES: dict[str, str] = {
    "standing": "standing straight, front view, neutral pose",
    "casual": "casual relaxed pose, slightly turned",
    "fashion": "fashion model pose, confident stance",
    "sitting": "sitting casually",
    "walking": "walking pose, mid-stride",
}

DEFAULT_BODY_TYPE = "average"
DEFAULT_POSE = "standing"

# Number of gallery records summarised for outfit suggestions.
SUGGESTION_RECORD_LIMIT = 20


def build_edit_instruction(cleaned_prompt: str) -> str:
    """Compose the clothing-edit instruction around an already sanitized prompt.

    Args:
        cleaned_prompt: Output of :func:`restyle.core.prompt_safety.sanitize`.

    Returns:
        The instruction text, requirement lines separated by newlines.
    """
    requirements = "\n".join(_EDIT_REQUIREMENTS)
    return (
        f"Edit the provided image by changing only the clothing to: {cleaned_prompt}.\n\n"
        f"Strict requirements:\n{requirements}"
    )


def build_try_on_instruction(body_type: str | None, pose: str | None) -> str:
    """Compose the virtual try-on instruction.

    Unknown body types and poses fall back to ``"average"`` and
    ``"standing"``.
    """
    body_desc = BODY_TYPES.get(body_type or "", BODY_TYPES[DEFAULT_BODY_TYPE])
    pose_desc = POSES.get(pose or "", POSES[DEFAULT_POSE])
    requirements = "\n".join(_TRY_ON_REQUIREMENTS)
    return (
        f"You are a virtual try-on AI. Place this clothing item on a {body_desc} person "
        f"in a {pose_desc} pose.\n\n"
        f"CRITICAL REQUIREMENTS:\n{requirements}\n\n"
        "Generate a photorealistic image showing how this clothing would look when worn."
    )


def describe_wardrobe(records: Iterable[Mapping]) -> str:
    """Summarise gallery records as numbered wardrobe lines."""
    lines = []
    for index, record in enumerate(records, start=1):
        if index > SUGGESTION_RECORD_LIMIT:
            break
        tags = ", ".join(record.get("tags") or []) or "no tags"
        description = record.get("description") or "no description"
        lines.append(f"Image {index}: Tags: {tags}, Description: {description}")
    return "\n".join(lines) or "No images in gallery"


def build_suggestion_instruction(
    records: Iterable[Mapping],
    *,
    season: str | None = None,
    occasion: str | None = None,
    style: str | None = None,
) -> str:
    """Compose the stylist prompt asking for a JSON array of outfits.

    Args:
        records: Gallery records; only ``tags`` and ``description`` are used
            and at most ``SUGGESTION_RECORD_LIMIT`` records are included.
        season: Target season, ``"any"`` when omitted.
        occasion: Target occasion, ``"casual"`` when omitted.
        style: Style preference, ``"versatile"`` when omitted.

    Returns:
        The instruction text.
    """
    return f"""You are a professional fashion stylist AI. Analyze the user's wardrobe and provide personalized outfit recommendations.

USER'S WARDROBE:
{describe_wardrobe(records)}

PREFERENCES:
- Season: {season or "any"}
- Occasion: {occasion or "casual"}
- Style: {style or "versatile"}

Generate 5 complete outfit recommendations. For EACH outfit provide:
1. A catchy outfit name
2. Which pieces to combine (reference the image numbers)
3. Why this outfit works for the season/occasion
4. Styling tips (accessories, shoes, etc.)
5. Color coordination advice

Format your response as a JSON array with this structure:
[
  {{
    "name": "Outfit name",
    "pieces": ["Image 1", "Image 3"],
    "description": "Why this works",
    "tips": "Styling suggestions",
    "colors": "Color advice"
  }}
]

Be specific, creative, and practical. Only suggest combinations that make sense."""
