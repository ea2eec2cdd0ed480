"""
Designer API endpoints.

The redesign endpoint runs the whole flow in a fixed order:

1. validate the upload (type, size, aspect ratio) before any network call
2. usage gate (free allowance), then rate gate
3. count the attempt against the rate limit
4. signed-in users: upload the original and create a project
5. call the model
6. count the redesign and push the refreshed usage
7. signed-in users: upload the redesign and attach it to the project
8. clear the persisted designer session

Refinement endpoints (layout mask, customizations) reuse the same
generator but skip the usage gates.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Query

from .app_config import app_config
from .constants import LANDSCAPING_STYLES
from .errors import GenerationError, ImageStoreError, UsageLimitExceeded, ValidationError
from .gemini_client import design_generator
from .identity import Requester, get_requester
from .image_store import image_store
from .project_store import project_store
from .schemas import (
    CustomizeRequest,
    DesignCatalog,
    ElementDetails,
    Feature,
    GeneratedImage,
    ImageFile,
    RedesignRequest,
    RedesignResponse,
    RefineLayoutRequest,
    RefineResponse,
    RefinementModifications,
)
from .session_store import session_store
from .shared.image_validation import (
    ValidatedImage,
    check_aspect_ratio,
    validate_base64_image,
)
from .shared.logger import get_logger
from .subscriptions import subscription_store
from .usage_ledger import SIGN_UP_MESSAGE, SUBSCRIBE_MESSAGE, usage_ledger
from notifications import ToastLevel, notify_toast, notify_usage

logger = get_logger(__name__)

router = APIRouter(prefix="/designer", tags=["designer"])

REDESIGN_ACTION = "redesign"


# ============= Helpers =============


def _max_upload_bytes() -> int:
    return app_config.settings.max_upload_mb * 1024 * 1024


def validate_source_image(image: ImageFile) -> Optional[ValidatedImage]:
    """Check an inline or stored source image without touching the network.

    Inline images are decoded and fully validated. Stored images are checked
    against the dimensions recorded at upload time, when present.
    """
    if image.base64:
        return validate_base64_image(image.base64, image.type, _max_upload_bytes())
    if image.url:
        if image.width and image.height:
            check_aspect_ratio(image.width, image.height)
        return None
    raise ValidationError("Please upload an image first.")


async def load_source_image(image: ImageFile) -> Tuple[str, str]:
    """Return ``(base64, mime)`` for the model, downloading stored images."""
    if image.base64:
        return image.base64, image.type
    return await image_store.fetch_image_as_base64(image.url)


def _is_subscribed(requester: Requester) -> bool:
    return requester.is_authenticated and subscription_store.is_user_subscribed(requester.user_id)


async def _attach_to_project(
    requester: Requester,
    project_id: Optional[str],
    result: GeneratedImage,
    catalog: Optional[DesignCatalog],
) -> Optional[str]:
    """Store a generated image on the project; returns its url, None when skipped or failed."""
    if not (requester.is_authenticated and project_id):
        return None
    try:
        project = await project_store.update_project_with_redesign(
            project_id, requester.user_id, result, catalog
        )
    except ImageStoreError as e:
        logger.warning("Could not save redesign for project %s: %s", project_id, e)
        await notify_toast(requester.user_id, "Your design was generated but could not be saved.", ToastLevel.ERROR)
        return None
    return project.redesigned_image_url if project else None


# ============= Routes =============


@router.get("/styles")
async def list_styles():
    """Available landscaping styles."""
    return {"styles": LANDSCAPING_STYLES}


@router.post("/redesign", response_model=RedesignResponse)
async def redesign(body: RedesignRequest, requester: Requester = Depends(get_requester)):
    """Redesign the uploaded photo in the selected styles."""
    validated = validate_source_image(body.image)

    is_subscribed = await asyncio.to_thread(_is_subscribed, requester)
    usage = await asyncio.to_thread(usage_ledger.check_redesign_limit, requester, is_subscribed)
    if not usage.can_redesign:
        await notify_usage(requester.user_id, usage.model_dump(), upgrade_required=True)
        message = SUBSCRIBE_MESSAGE if requester.is_authenticated else SIGN_UP_MESSAGE
        raise UsageLimitExceeded(message, usage=usage.model_dump())

    await asyncio.to_thread(usage_ledger.enforce_rate_limit, requester.rate_limit_key, REDESIGN_ACTION)
    await asyncio.to_thread(usage_ledger.increment_rate_limit, requester.rate_limit_key, REDESIGN_ACTION)

    try:
        project_id = None
        if requester.is_authenticated:
            original = body.image
            if validated is not None and not original.public_id:
                uploaded = await image_store.upload_image(validated.data, validated.mime_type)
                original = original.model_copy(update={
                    "url": uploaded.secure_url,
                    "public_id": uploaded.public_id,
                    "width": validated.width,
                    "height": validated.height,
                })
            project_id = await asyncio.to_thread(
                project_store.create_project,
                user_id=requester.user_id,
                original_image=original,
                styles=body.styles,
                allow_structural_changes=body.allow_structural_changes,
                climate_zone=body.climate_zone,
                redesign_density=body.redesign_density,
            )

        image_base64, mime_type = await load_source_image(body.image)
        result = await design_generator.redesign_outdoor_space(
            image_base64,
            mime_type,
            body.styles,
            body.allow_structural_changes,
            body.climate_zone,
            body.lock_aspect_ratio,
            body.redesign_density,
            body.layout_mask,
        )
    except (GenerationError, ImageStoreError) as e:
        logger.error("Redesign failed for %s: %s", requester.user_id, e.message)
        await notify_toast(requester.user_id, f"Redesign failed: {e.message}", ToastLevel.ERROR)
        raise GenerationError(f"Failed to generate redesign. {e.message.rstrip('.')}.") from e

    await asyncio.to_thread(usage_ledger.increment_redesign_count, requester, is_subscribed)
    usage = await asyncio.to_thread(usage_ledger.check_redesign_limit, requester, is_subscribed)
    await notify_usage(requester.user_id, usage.model_dump())

    redesigned_url = await _attach_to_project(requester, project_id, result, result.catalog)

    await asyncio.to_thread(session_store.clear, requester.session_key)
    await notify_toast(requester.user_id, "Redesign complete!", ToastLevel.SUCCESS)

    return RedesignResponse(
        image_base64=result.image_base64,
        mime_type=result.mime_type,
        catalog=result.catalog,
        usage=usage,
        project_id=project_id,
        redesigned_image_url=redesigned_url,
    )


@router.post("/refine-layout", response_model=RefineResponse)
async def refine_layout(body: RefineLayoutRequest, requester: Requester = Depends(get_requester)):
    """Redraw driveways and pathways on an existing design from a mask."""
    validate_source_image(body.image)
    await notify_toast(requester.user_id, "Refining layout...", ToastLevel.INFO)

    try:
        image_base64, mime_type = await load_source_image(body.image)
        result = await design_generator.refine_redesign(
            image_base64, mime_type, RefinementModifications(), body.layout_mask
        )
    except (GenerationError, ImageStoreError) as e:
        logger.error("Layout refinement failed for %s: %s", requester.user_id, e.message)
        await notify_toast(requester.user_id, f"Refinement failed: {e.message}", ToastLevel.ERROR)
        raise GenerationError(f"Failed to refine layout. {e.message.rstrip('.')}.") from e

    redesigned_url = await _attach_to_project(requester, body.project_id, result, body.catalog)
    await notify_toast(requester.user_id, "Layout refined successfully!", ToastLevel.SUCCESS)
    return RefineResponse(
        image_base64=result.image_base64,
        mime_type=result.mime_type,
        catalog=body.catalog,
        redesigned_image_url=redesigned_url,
    )


@router.post("/customize", response_model=RefineResponse)
async def customize(body: CustomizeRequest, requester: Requester = Depends(get_requester)):
    """Apply deletions, replacements and additions to an existing design."""
    if body.modifications.is_empty():
        message = "No customizations were applied."
        await notify_toast(requester.user_id, message, ToastLevel.INFO)
        return RefineResponse(applied=False, message=message, catalog=body.catalog)

    validate_source_image(body.image)
    await notify_toast(requester.user_id, "Refining your design...", ToastLevel.INFO)

    try:
        catalog = body.catalog.model_copy(deep=True)
        if body.new_additions:
            await notify_toast(
                requester.user_id,
                f"Generating images for {len(body.new_additions)} new item(s)...",
                ToastLevel.INFO,
            )
            image_urls = await asyncio.gather(*(
                design_generator.get_element_image(a.name, a.description)
                for a in body.new_additions
            ))
            catalog.features.extend(
                Feature(name=a.name, description=a.description, image_url=url)
                for a, url in zip(body.new_additions, image_urls)
            )

        image_base64, mime_type = await load_source_image(body.image)
        result = await design_generator.refine_redesign(image_base64, mime_type, body.modifications)
    except (GenerationError, ImageStoreError) as e:
        logger.error("Customization failed for %s: %s", requester.user_id, e.message)
        await notify_toast(requester.user_id, f"Refinement failed: {e.message}", ToastLevel.ERROR)
        raise GenerationError(f"Failed to refine design. {e.message.rstrip('.')}.") from e

    redesigned_url = await _attach_to_project(requester, body.project_id, result, catalog)
    await notify_toast(requester.user_id, "Design refined successfully!", ToastLevel.SUCCESS)
    return RefineResponse(
        image_base64=result.image_base64,
        mime_type=result.mime_type,
        catalog=catalog,
        redesigned_image_url=redesigned_url,
    )


@router.get("/suggestions")
async def replacement_suggestions(
    element: str,
    styles: List[str] = Query(default_factory=list),
    climate_zone: str = "",
):
    """Up to three replacement ideas for a catalog element."""
    suggestions = await design_generator.get_replacement_suggestions(element, styles, climate_zone)
    return {"element": element, "suggestions": suggestions}


@router.get("/elements/{name}", response_model=ElementDetails)
async def element_details(name: str, description: Optional[str] = None):
    """Catalog photo and homeowner description for one element."""
    return await design_generator.get_element_details(name, description)
