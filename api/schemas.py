"""
Pydantic models shared by the designer, usage, project and checkout routers.

Field names are snake_case and timestamps are epoch milliseconds.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_STYLE, MAX_SELECTED_STYLES

RedesignDensity = Literal["minimal", "default", "lush"]


# ============= Catalog =============


class Plant(BaseModel):
    name: str
    species: str = ""


class Feature(BaseModel):
    name: str
    description: str = ""
    image_url: Optional[str] = None


class DesignCatalog(BaseModel):
    plants: List[Plant] = Field(default_factory=list)
    features: List[Feature] = Field(default_factory=list)


# ============= Images =============


class ImageFile(BaseModel):
    """An image held by the client, either inline (base64) or in the image store."""

    name: str = "image"
    type: str = "image/png"
    base64: Optional[str] = None
    url: Optional[str] = None
    public_id: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class UploadedImage(BaseModel):
    public_id: str
    secure_url: str
    width: int = 0
    height: int = 0
    format: str = ""


class GeneratedImage(BaseModel):
    image_base64: str
    mime_type: str


class RedesignResult(GeneratedImage):
    catalog: DesignCatalog = Field(default_factory=DesignCatalog)


# ============= Refinement =============


class Replacement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    to: str


class RefinementModifications(BaseModel):
    deletions: List[str] = Field(default_factory=list)
    replacements: List[Replacement] = Field(default_factory=list)
    additions: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.deletions or self.replacements or self.additions)


class NewAddition(BaseModel):
    name: str
    description: str = ""


# ============= Usage =============


class UsageStatus(BaseModel):
    can_redesign: bool = True
    redesign_count: int = 0
    remaining_redesigns: int = 3
    is_subscribed: bool = False


class RateLimitStatus(BaseModel):
    allowed: bool
    attempts_remaining: int


# ============= Projects =============


class Project(BaseModel):
    id: str
    user_id: str
    title: Optional[str] = None
    original_image_url: str
    original_image_public_id: str
    styles: List[str] = Field(default_factory=list)
    allow_structural_changes: bool = False
    climate_zone: str = ""
    redesign_density: RedesignDensity = "default"
    redesigned_image_url: Optional[str] = None
    redesigned_image_public_id: Optional[str] = None
    catalog: Optional[DesignCatalog] = None
    is_pinned: bool = False
    created_at: int
    updated_at: int


class ProjectCreate(BaseModel):
    original_image: ImageFile
    styles: List[str] = Field(default_factory=lambda: [DEFAULT_STYLE])
    allow_structural_changes: bool = False
    climate_zone: str = ""
    redesign_density: RedesignDensity = "default"
    title: Optional[str] = None


# ============= Subscriptions =============


class Subscription(BaseModel):
    user_id: str
    polar_subscription_id: str
    polar_customer_id: Optional[str] = None
    plan_name: str
    billing_cycle: Optional[str] = None
    status: str
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    created_at: Optional[int] = None
    updated_at: Optional[int] = None


# ============= Designer requests =============


class DesignOptions(BaseModel):
    styles: List[str] = Field(default_factory=lambda: [DEFAULT_STYLE])
    allow_structural_changes: bool = False
    climate_zone: str = ""
    lock_aspect_ratio: bool = True
    redesign_density: RedesignDensity = "default"

    @field_validator("styles")
    @classmethod
    def _check_styles(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("Select at least one style")
        if len(value) > MAX_SELECTED_STYLES:
            raise ValueError(f"Select at most {MAX_SELECTED_STYLES} styles")
        return value


class RedesignRequest(DesignOptions):
    image: ImageFile
    layout_mask: Optional[str] = None


class RedesignResponse(BaseModel):
    image_base64: str
    mime_type: str
    catalog: DesignCatalog
    usage: UsageStatus
    project_id: Optional[str] = None
    redesigned_image_url: Optional[str] = None


class RefineLayoutRequest(BaseModel):
    image: ImageFile
    layout_mask: str
    project_id: Optional[str] = None
    catalog: Optional[DesignCatalog] = None


class CustomizeRequest(BaseModel):
    image: ImageFile
    modifications: RefinementModifications
    new_additions: List[NewAddition] = Field(default_factory=list)
    catalog: DesignCatalog = Field(default_factory=DesignCatalog)
    project_id: Optional[str] = None


class RefineResponse(BaseModel):
    image_base64: Optional[str] = None
    mime_type: Optional[str] = None
    catalog: Optional[DesignCatalog] = None
    applied: bool = True
    message: str = ""
    redesigned_image_url: Optional[str] = None


class ElementDetails(BaseModel):
    name: str
    image_url: str
    info: str


class CheckoutRequest(BaseModel):
    plan: str
    billing_cycle: Literal["monthly", "annual"] = "monthly"
    email: Optional[str] = None


class CheckoutSuccessRequest(BaseModel):
    session_id: str
    plan: str


def catalog_to_dict(catalog: Optional[DesignCatalog]) -> Optional[Dict[str, Any]]:
    """Serialize a catalog for storage, dropping unset image urls."""
    if catalog is None:
        return None
    return catalog.model_dump(exclude_none=True)
