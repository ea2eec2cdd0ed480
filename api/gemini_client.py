"""
Generative design client built on the Google GenAI SDK.

One async client is shared by every request. Calls are single-shot: a
failure is classified (safety block, empty response, missing image,
transport) and raised to the caller; nothing is retried here.
"""

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any, List, Optional, Sequence

from google import genai
from google.genai import types

from .app_config import app_config
from .constants import FALLBACK_SUGGESTIONS
from .design_prompts import (
    build_element_image_prompt,
    build_element_info_prompt,
    build_redesign_prompt,
    build_refinement_prompt,
    build_suggestions_prompt,
    parse_design_catalog,
)
from .errors import (
    EmptyResponseError,
    GenerationError,
    MissingImageError,
    ModelTransportError,
    SafetyBlockError,
)
from .schemas import DesignCatalog, ElementDetails, GeneratedImage, RedesignResult, RefinementModifications
from .shared.image_validation import decode_base64_image, split_data_url
from .shared.logger import get_logger

logger = get_logger(__name__)

_SUGGESTIONS_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "suggestions": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(type=types.Type.STRING),
        ),
    },
    required=["suggestions"],
)


def _as_base64(data: Any) -> str:
    if isinstance(data, (bytes, bytearray)):
        return base64.b64encode(data).decode("ascii")
    return str(data)


def _image_part(image_base64: str, mime_type: str) -> types.Part:
    return types.Part.from_bytes(data=decode_base64_image(image_base64), mime_type=mime_type)


class DesignGenerator:
    """Wraps the image, text and Imagen endpoints used by the designer."""

    def __init__(self, client: Optional[genai.Client] = None):
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not app_config.is_configured("gemini"):
                raise ModelTransportError("Gemini API error: GEMINI_API_KEY is not configured")
            self._client = genai.Client(api_key=app_config.settings.gemini_api_key)
        return self._client

    def use_client(self, client: Any) -> None:
        """Replace the SDK client (tests pass a fake)."""
        self._client = client

    # ============================================================================
    # Core calls
    # ============================================================================

    def _build_parts(
        self,
        image_base64: str,
        mime_type: str,
        prompt: str,
        layout_mask: Optional[str],
    ) -> List[types.Part]:
        """Source image, optional mask, then the prompt text."""
        parts = [_image_part(image_base64, mime_type)]
        mask_payload, mask_mime = split_data_url(layout_mask)
        if mask_payload is not None:
            parts.append(_image_part(mask_payload, mask_mime))
        elif layout_mask:
            logger.warning("Ignoring layout mask without image data")
        parts.append(types.Part.from_text(text=prompt))
        return parts

    async def _generate(self, parts: List[types.Part], modalities: List[str], label: str):
        try:
            return await self.client.aio.models.generate_content(
                model=app_config.settings.design_model,
                contents=parts,
                config=types.GenerateContentConfig(response_modalities=modalities),
            )
        except GenerationError:
            raise
        except Exception as e:
            logger.error("Error calling Gemini API for %s: %s", label, e)
            raise ModelTransportError(f"Gemini API error: {e}") from e

    def _first_candidate_parts(self, response: Any, label: str) -> list:
        feedback = getattr(response, "prompt_feedback", None)
        reason = getattr(feedback, "block_reason", None) if feedback else None
        if reason:
            reason = getattr(reason, "value", reason)
            details = getattr(feedback, "block_reason_message", None) or "No additional details provided."
            logger.error("Gemini API request blocked (%s). Reason: %s. Message: %s", label, reason, details)
            raise SafetyBlockError(str(reason), details)

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            logger.error("Gemini API returned no candidates for %s", label)
            raise EmptyResponseError(
                "The model returned no content. This could be due to a safety policy "
                "or an unknown model error."
            )
        content = getattr(candidates[0], "content", None)
        return list(getattr(content, "parts", None) or [])

    async def redesign_outdoor_space(
        self,
        image_base64: str,
        mime_type: str,
        styles: Sequence[str],
        allow_structural_changes: bool,
        climate_zone: str,
        lock_aspect_ratio: bool,
        redesign_density: str,
        layout_mask: Optional[str] = None,
    ) -> RedesignResult:
        """Redesign a photo and return the new image with its catalog.

        Raises:
            GenerationError: Any subclass, depending on how the call failed.
        """
        mask_payload, _ = split_data_url(layout_mask)
        prompt = build_redesign_prompt(
            styles,
            allow_structural_changes,
            climate_zone,
            lock_aspect_ratio,
            redesign_density,
            has_layout_mask=mask_payload is not None,
        )
        parts = self._build_parts(image_base64, mime_type, prompt, layout_mask)
        response = await self._generate(parts, ["IMAGE", "TEXT"], "redesign")

        image: Optional[GeneratedImage] = None
        text_chunks: List[str] = []
        for part in self._first_candidate_parts(response, "redesign"):
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None) and image is None:
                image = GeneratedImage(
                    image_base64=_as_base64(inline.data),
                    mime_type=inline.mime_type or "image/png",
                )
            elif getattr(part, "text", None):
                text_chunks.append(part.text)

        if image is None:
            logger.error("Gemini API response had no image part for redesign")
            raise MissingImageError("The model did not return a redesigned image.")

        catalog = parse_design_catalog("".join(text_chunks)) or DesignCatalog()
        logger.info(
            "Redesign generated (%s, %d plants, %d features)",
            image.mime_type, len(catalog.plants), len(catalog.features),
        )
        return RedesignResult(
            image_base64=image.image_base64,
            mime_type=image.mime_type,
            catalog=catalog,
        )

    async def refine_redesign(
        self,
        image_base64: str,
        mime_type: str,
        modifications: RefinementModifications,
        layout_mask: Optional[str] = None,
    ) -> GeneratedImage:
        """Apply an edit script to an existing design; returns the first image part."""
        mask_payload, _ = split_data_url(layout_mask)
        prompt = build_refinement_prompt(modifications, has_layout_mask=mask_payload is not None)
        parts = self._build_parts(image_base64, mime_type, prompt, layout_mask)
        response = await self._generate(parts, ["IMAGE"], "refinement")

        for part in self._first_candidate_parts(response, "refinement"):
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None):
                return GeneratedImage(
                    image_base64=_as_base64(inline.data),
                    mime_type=inline.mime_type or "image/png",
                )

        logger.error("Gemini API response had no image part for refinement")
        raise MissingImageError("The model did not return a refined image.")

    # ============================================================================
    # Catalog helpers
    # ============================================================================

    async def get_replacement_suggestions(
        self,
        element_name: str,
        styles: Sequence[str],
        climate_zone: str = "",
    ) -> List[str]:
        """Up to three replacement ideas; generic fallbacks on any failure."""
        prompt = build_suggestions_prompt(element_name, styles, climate_zone)
        try:
            response = await self.client.aio.models.generate_content(
                model=app_config.settings.text_model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=_SUGGESTIONS_SCHEMA,
                ),
            )
            parsed = json.loads((response.text or "").strip())
        except Exception as e:
            logger.error("Error getting replacement suggestions for %s: %s", element_name, e)
            return list(FALLBACK_SUGGESTIONS)

        suggestions = parsed.get("suggestions") if isinstance(parsed, dict) else None
        if isinstance(suggestions, list):
            return [str(s) for s in suggestions[:3]]
        return []

    async def get_element_image(self, element_name: str, description: Optional[str] = None) -> str:
        """Catalog photo of a single element as a PNG data URL."""
        prompt = build_element_image_prompt(element_name, description)
        try:
            response = await self.client.aio.models.generate_images(
                model=app_config.settings.element_image_model,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=1,
                    output_mime_type="image/png",
                    aspect_ratio="1:1",
                ),
            )
            generated = getattr(response, "generated_images", None) or []
            image_bytes = generated[0].image.image_bytes if generated else None
            if not image_bytes:
                raise EmptyResponseError("Image generation failed to return an image.")
        except Exception as e:
            logger.error('Error generating image for "%s": %s', element_name, e)
            raise GenerationError(f"Failed to generate image for {element_name}.") from e
        return f"data:image/png;base64,{_as_base64(image_bytes)}"

    async def get_element_info(self, element_name: str) -> str:
        prompt = build_element_info_prompt(element_name)
        try:
            response = await self.client.aio.models.generate_content(
                model=app_config.settings.text_model,
                contents=prompt,
            )
        except Exception as e:
            logger.error('Error getting info for "%s": %s', element_name, e)
            raise GenerationError(f"Failed to get information for {element_name}.") from e
        return response.text or ""

    async def get_element_details(self, element_name: str, description: Optional[str] = None) -> ElementDetails:
        image_url, info = await asyncio.gather(
            self.get_element_image(element_name, description),
            self.get_element_info(element_name),
        )
        return ElementDetails(name=element_name, image_url=image_url, info=info)


# Global instance
design_generator = DesignGenerator()
