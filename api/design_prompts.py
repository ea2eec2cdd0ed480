"""
Prompt construction and response parsing for the generative design model.

Everything here is pure string work so it can be tested without the SDK:

- build_redesign_prompt: instruction set for a full landscape redesign
- build_refinement_prompt: edit script for an existing design
- parse_design_catalog: extract the plant/feature catalog from model text
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from .constants import STYLE_NAMES
from .schemas import DesignCatalog, RefinementModifications
from .shared.logger import get_logger

logger = get_logger(__name__)

_ARID_RE = re.compile(r"arid|desert", re.IGNORECASE)
_FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")

CATALOG_SCHEMA = json.dumps(
    {
        "plants": [{"name": "string", "species": "string"}],
        "features": [{"name": "string", "description": "string"}],
    },
    indent=2,
)


def style_names(styles: Sequence[str]) -> List[str]:
    """Map style ids to display names; unknown ids pass through."""
    return [STYLE_NAMES.get(s, s) for s in styles]


# ============================================================================
# Redesign prompt sections
# ============================================================================


def _style_instruction(styles: Sequence[str]) -> str:
    names = style_names(styles)
    if len(names) > 1:
        blended = "' and '".join(names)
        return (
            f"Redesign the landscape in a blended style that combines '{blended}'. "
            "Prioritize a harmonious fusion of these aesthetics."
        )
    return f"Redesign the landscape in a '{names[0]}' style."


def _structural_instruction(allow_structural_changes: bool) -> str:
    if allow_structural_changes:
        return (
            "You are allowed to make structural changes to the LANDSCAPE. This includes "
            "adding or altering hardscapes like pergolas, decks, stone patios, retaining "
            "walls, and pathways. This permission **DOES NOT** apply to the house. You are "
            "**STRICTLY FORBIDDEN** from altering the main building's architecture, windows, "
            "doors, or roof."
        )
    return (
        "**ABSOLUTELY NO** structural changes. You are forbidden from adding, removing, or "
        "altering buildings, walls, gates, fences, driveways, or other permanent structures. "
        "Your redesign must focus exclusively on softscapes (plants, flowers, grass, mulch) "
        "and easily movable elements (outdoor furniture, pots, decorative items)."
    )


def _object_removal_instruction(allow_structural_changes: bool) -> str:
    if allow_structural_changes:
        return (
            "A critical rule is to handle objects like people, animals, or vehicles. You MUST "
            "completely remove any such objects from the property and seamlessly redesign the "
            "landscape area they were occupying. The ground underneath (grass, pavement, garden "
            "beds, etc.) must be filled in as part of the new design."
        )
    return (
        "You are **STRICTLY FORBIDDEN** from removing or altering any people, animals, or "
        "vehicles (cars, trucks, etc.). Treat all of these as permanent objects in the scene "
        "that must not be changed. Your design must work around them."
    )


def _climate_instruction(climate_zone: str) -> str:
    climate_zone = (climate_zone or "").strip()
    if not climate_zone:
        return (
            "Select plants and materials that are generally appropriate for the visual "
            "context of the image."
        )
    text = f"All plants, trees, and materials MUST be suitable for the '{climate_zone}' climate/region."
    if _ARID_RE.search(climate_zone):
        text += (
            " For this arid climate, prioritize drought-tolerant plants. Excellent choices "
            "include succulents (like Agave, Aloe), cacti (like Prickly Pear), ornamental "
            "grasses (like Blue Grama), and hardy shrubs (like Sagebrush)."
        )
    return text


def _aspect_ratio_instruction(lock_aspect_ratio: bool) -> str:
    if lock_aspect_ratio:
        return (
            "You MUST maintain the exact aspect ratio of the original input image. The output "
            "image dimensions must correspond to the input image dimensions."
        )
    return "Preserve the original aspect ratio if possible."


_DENSITY_INSTRUCTIONS = {
    "minimal": (
        "CRITICAL DENSITY INSTRUCTION: The user has selected a MINIMAL design. You MUST "
        "prioritize open space and simplicity above all else. Use a very limited number of "
        "high-impact plants and features. The final design must be clean, uncluttered, and "
        "feel spacious."
    ),
    "lush": (
        "CRITICAL DENSITY INSTRUCTION: The user has selected a LUSH design. This is a primary "
        "command. You MUST maximize planting to create a dense, layered, and abundant garden. "
        "Fill nearly all available softscape areas with a rich variety of plants, textures, and "
        "foliage. The goal is an immersive, vibrant landscape with minimal empty or open space."
    ),
    "default": (
        "CRITICAL DENSITY INSTRUCTION: The user has selected a BALANCED design. You MUST create "
        "a harmonious mix of planted areas and functional open space (like lawn or patio). "
        "Avoid extremes: the design should not feel empty or overly crowded. The composition "
        "should be thoughtful and well-proportioned."
    ),
}


def _density_instruction(density: str) -> str:
    return _DENSITY_INSTRUCTIONS.get(density, _DENSITY_INSTRUCTIONS["default"])


_MASK_LAYOUT_RULES = """**CRITICAL RULE: DRIVEWAY & PATHWAY MASK:** You have been provided with a second image which acts as a mask, defining specific zones for hardscapes. This is your primary instruction and overrides all other style rules.
- The overlay contains filled, colored regions. These are NOT just lines; they are complete shapes you must fill.
- **DARK GRAY ZONES (DRIVEWAYS):** You MUST fill these exact shapes with a realistic driveway material (e.g., asphalt, concrete, pavers, gravel) that fits the overall design style. The shape and location from the mask are absolute and must be replicated precisely.
- **BROWN ZONES (PATHWAYS):** You MUST fill these exact shapes with a realistic pathway material (e.g., stone pavers, gravel, wood chips, brick). The shape and location from the mask are non-negotiable.
- **Unmarked areas:** You are FORBIDDEN from placing any driveway or pathway surfaces outside of the mask's marked zones.
- **Adherence is mandatory.** The final image's hardscapes must perfectly match the provided mask. Treat it as a non-negotiable blueprint."""

_ACCESS_LAYOUT_RULES = """**CRITICAL RULE: Functional Access (No Exceptions):**
  - **Garages & Driveways:** You MUST consistently identify all garage doors. A functional driveway MUST lead directly to each garage door. This driveway must be kept completely clear of any new plants, trees, hardscaping, or other obstructions. The driveway's width MUST be maintained to be at least as wide as the full width of the garage door it serves. Do not place any design elements on the driveway surface. This is a non-negotiable rule.
  - **All Other Doors:** EVERY door (front doors, side doors, patio doors, etc.) MUST be accessible. This means each door must have a clear, direct, and unobstructed pathway leading to it. This pathway must be at least as wide as the door itself and must connect logically to a larger circulation route like the main driveway or a walkway. Do not isolate any doors."""

_REDESIGN_TEMPLATE = """
You are an expert AI landscape designer. Your task is to perform an in-place edit of the user's provided image.

**CORE DIRECTIVE: MODIFY THE LANDSCAPE, PRESERVE THE PROPERTY**
This is the most important rule. You MUST use the user's uploaded image as the base for your work. Your sole purpose is to modify the *landscape* within that photo. You are **STRICTLY FORBIDDEN** from generating a completely new image, replacing the property, or altering the main house/building. The output image must clearly be the same property as the input, but with a new landscape design.

**CRITICAL RULE: THE HOUSE IS IMMUTABLE**
This is a non-negotiable, absolute command. The main building in the photo MUST NOT be changed in any way.
- **DO NOT** alter its architecture, color, materials, windows, doors, roof, or any part of its structure.
- **DO NOT** add new doors or windows where there were none.
- **DO NOT** remove existing doors or windows.
- **DO NOT** change the color of the house paint, trim, or roof.
All design work must be done *around* the existing house as if it were a permanent, uneditable backdrop. This rule takes precedence over all other instructions, including style requests.

{layout}

**PRIMARY GOAL: IMAGE GENERATION**
Your response MUST begin with the image part. This is a non-negotiable instruction. The first part of your multipart response must be the redesigned image.

**SECONDARY GOAL: JSON DATA**
After the image, you MUST provide a valid JSON object describing the new plants and features. Do not add any introductory text like "Here is the JSON" or conversational filler. The text part should contain ONLY the JSON object, optionally wrapped in a markdown code block.

**INPUT:**
You will receive one image (and potentially a second layout image) and this set of instructions.

**IMAGE REDESIGN INSTRUCTIONS:**
- **Style:** {style}
- **CRITICAL STYLE APPLICATION RULE:** Applying a style means modifying ONLY the landscape elements (plants, paths, furniture, etc.) within the user's photo to match the requested style. It does NOT mean creating a new property or scene. The house and its surroundings must remain identical to the original image, with only the landscape design changing. This rule is absolute.
- **Image Quality:** This is a CRITICAL instruction. The output image MUST be of the absolute highest professional quality. It must be ultra-photorealistic, extremely detailed, with sharp focus and lighting that matches the original image. The resolution should be as high as possible. Avoid any blurry, pixelated, distorted, or digitally artifacted results. The final image must look like it was taken with a high-end DSLR camera.
- **CRITICAL AESTHETIC RULE: NO TEXTUAL LABELS.** You are absolutely forbidden from adding any text, words, signs, or labels that name the style (e.g., do not write the word 'Modern' or 'Farmhouse' anywhere in the image). The style must be conveyed purely through visual design elements, not through text.
- **Object Removal:** {object_removal}
- **Structural Landscape Changes:** {structural}
- **Climate:** {climate}
- **Aspect Ratio:** {aspect_ratio}
- **Design Density:** {density}

**JSON SCHEMA (for the text part):**
The JSON object must follow this exact schema.
{schema}
- Ensure every single plant in the JSON catalog is suitable for the specified climate zone. This is a non-negotiable rule.
- If a category is empty, provide an empty list [].
"""


def build_redesign_prompt(
    styles: Sequence[str],
    allow_structural_changes: bool,
    climate_zone: str,
    lock_aspect_ratio: bool,
    redesign_density: str,
    has_layout_mask: bool,
) -> str:
    """Compose the full redesign instruction set.

    Args:
        styles: One or two style ids.
        allow_structural_changes: Whether hardscapes may change (never the house).
        climate_zone: Free-text region; empty means infer from the photo.
        lock_aspect_ratio: Demand the exact input aspect ratio.
        redesign_density: ``minimal``, ``default`` or ``lush``; anything else
            is treated as ``default``.
        has_layout_mask: A driveway/pathway mask image accompanies the photo.
    """
    if not styles:
        raise ValueError("At least one style is required")
    return _REDESIGN_TEMPLATE.format(
        layout=_MASK_LAYOUT_RULES if has_layout_mask else _ACCESS_LAYOUT_RULES,
        style=_style_instruction(styles),
        object_removal=_object_removal_instruction(allow_structural_changes),
        structural=_structural_instruction(allow_structural_changes),
        climate=_climate_instruction(climate_zone),
        aspect_ratio=_aspect_ratio_instruction(lock_aspect_ratio),
        density=_density_instruction(redesign_density),
        schema=CATALOG_SCHEMA,
    )


# ============================================================================
# Refinement prompt
# ============================================================================

UNCHANGED_IMAGE_PROMPT = (
    "You are an AI assistant. The user wants to refine an image but provided no specific "
    "instructions. Your task is to return the original image completely unchanged. Your "
    "response MUST contain ONLY a single image part. DO NOT output any text."
)

_MASK_REFINEMENT_TASK = """**Layout Refinement Mask:** A second image is provided which is a mask for driveways and paths. This is your most important task.
- The mask contains filled, colored zones. You MUST redraw the driveways (marked in DARK GRAY) and pathways (marked in BROWN) to precisely fill the shapes and locations defined by this mask.
- The materials used for these surfaces should be consistent with the existing design's style.
- All other elements of the landscape (plants, furniture, house) MUST remain completely unchanged. Your only job is to update the driveways and paths according to the mask. Adherence to the mask's zones is non-negotiable."""

_REFINEMENT_TEMPLATE = """
You are an AI assistant for refining an existing landscape design. Your ONLY task is to generate a new image based on the instructions below.

**CRITICAL INSTRUCTION:** You MUST preserve the overall style, lighting, and unmentioned elements of the original design image. Your changes must be localized to the specified modifications only. This is the most important rule.

**INPUT EXPLANATION:**
Your input will contain one or two images (the existing design and an optional layout overlay) followed by this text prompt.

**OUTPUT REQUIREMENTS:**
Your response MUST contain ONLY a single photorealistic image part. DO NOT output any text, JSON, or markdown.

**REFINEMENT TASKS:**
- {tasks}
"""


def build_refinement_prompt(
    modifications: RefinementModifications,
    has_layout_mask: bool = False,
) -> str:
    """Compose the edit script for an existing design.

    The mask task comes first, then deletions, replacements and additions.
    With nothing to do the model is asked to return the image unchanged.
    """
    tasks: List[str] = []
    if has_layout_mask:
        tasks.append(_MASK_REFINEMENT_TASK)
    if modifications.deletions:
        tasks.append(
            "**Deletions:** You MUST completely remove the following elements from the image: "
            f"{', '.join(modifications.deletions)}."
        )
    if modifications.replacements:
        pairs = "; ".join(f"'{r.from_}' with '{r.to}'" for r in modifications.replacements)
        tasks.append(f"**Replacements:** You MUST replace the following elements: {pairs}.")
    if modifications.additions:
        tasks.append(
            "**Additions:** You MUST incorporate the following new elements into the design: "
            f"{', '.join(modifications.additions)}."
        )

    if not tasks:
        return UNCHANGED_IMAGE_PROMPT
    return _REFINEMENT_TEMPLATE.format(tasks="\n- ".join(tasks))


# ============================================================================
# Supplementary prompts
# ============================================================================


def build_suggestions_prompt(element_name: str, styles: Sequence[str], climate_zone: str) -> str:
    names = style_names(styles)
    if not names:
        style_part = "in a landscape"
    elif len(names) > 1:
        joined = '", "'.join(names)
        style_part = f'in a landscape that blends these styles: "{joined}"'
    else:
        style_part = f'in a "{names[0]}" style landscape'
    climate_part = (
        f" The suggestions must be suitable for the '{climate_zone}' climate/region."
        if climate_zone
        else ""
    )
    return (
        f'Provide exactly 3 creative and suitable replacements for a "{element_name}" '
        f"{style_part}.{climate_part} The suggestions should be concise, like "
        '"Japanese Maple Tree" or "Stone Bird Bath".'
    )


def build_element_image_prompt(element_name: str, description: Optional[str] = None) -> str:
    subject = f'"{element_name}" ({description})' if description else f'"{element_name}"'
    sep = ", isolated" if description else " isolated"
    return (
        f"Photorealistic image of a single {subject}{sep} on a clean, plain white background. "
        "The subject should be centered and clear, like a product photo for a catalog. "
        "No text, watermarks, or other objects."
    )


def build_element_info_prompt(element_name: str) -> str:
    return (
        f'Provide a brief, user-friendly description for a "{element_name}" for a homeowner\'s '
        "landscape design catalog. Include its typical size, ideal conditions (sun, water), and "
        "one interesting fact or design tip. Format the response as a single, concise paragraph."
    )


# ============================================================================
# Catalog parsing
# ============================================================================


def _extract_json_text(text: str) -> Optional[str]:
    match = _FENCED_JSON_RE.search(text)
    if match and match.group(1):
        return match.group(1)
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start:end + 1]
    return None


def normalize_catalog(data: Any) -> Optional[DesignCatalog]:
    """Coerce parsed JSON into a catalog, dropping entries without a name."""
    if not isinstance(data, dict):
        return None

    def _entries(key: str) -> List[Dict[str, Any]]:
        items = data.get(key) or []
        if not isinstance(items, list):
            return []
        return [i for i in items if isinstance(i, dict) and i.get("name")]

    plants = [
        {"name": str(p["name"]), "species": str(p.get("species") or "")}
        for p in _entries("plants")
    ]
    features = [
        {"name": str(f["name"]), "description": str(f.get("description") or "")}
        for f in _entries("features")
    ]
    return DesignCatalog.model_validate({"plants": plants, "features": features})


def parse_design_catalog(text: str) -> Optional[DesignCatalog]:
    """Extract the design catalog from free-form model text.

    Tries a fenced ```json block first, then the span from the first ``{``
    to the last ``}``. Returns None when neither yields valid JSON.
    """
    if not text:
        return None
    candidate = _extract_json_text(text)
    if candidate is None:
        return None
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse JSON from model response: %s", e)
        logger.debug("Received text: %s", text)
        return None
    catalog = normalize_catalog(data)
    if catalog is None:
        logger.warning("Model returned JSON that is not a catalog object")
    return catalog
