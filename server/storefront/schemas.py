"""
Pydantic schemas for the storefront backend.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ColorBackground(BaseModel):
    type: Literal["color"] = "color"
    value: str = Field(..., max_length=64)


class GradientBackground(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["gradient"] = "gradient"
    from_: str = Field(..., alias="from", max_length=64)
    to: str = Field(..., max_length=64)
    angle: str = Field(default="to bottom right", max_length=32)


class ImageBackground(BaseModel):
    type: Literal["image"] = "image"
    value: str = Field(..., max_length=2048)


Background = Annotated[
    Union[ColorBackground, GradientBackground, ImageBackground],
    Field(discriminator="type"),
]
background_adapter = TypeAdapter(Background)


class DraftThemePatch(BaseModel):
    """Partial draft update; only the fields present are written."""

    model_config = ConfigDict(extra="forbid")

    draft_settings: Optional[dict[str, Any]] = None
    draft_logo_url: Optional[str] = Field(default=None, max_length=2048)
    draft_header_bg_color: Optional[str] = Field(default=None, max_length=64)
    draft_footer_bg_color: Optional[str] = Field(default=None, max_length=64)
    draft_background: Optional[Background] = None

    def to_patch(self) -> dict:
        return self.model_dump(exclude_unset=True, by_alias=True)


class OperationResponse(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


class StorefrontThemeResponse(BaseModel):
    store_id: str
    preview: bool
    theme: dict
    style: dict[str, str]
    background_style: dict[str, str]


class UploadSignRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)


class UploadGrantResponse(BaseModel):
    path: str
    token: str
    url: str
    expires_at: float
    public_url: str


class StoreCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)


class StoreResponse(BaseModel):
    id: str
    name: str
    owner_id: str
    custom_domain: Optional[str] = None
    created_at: float


class ListStoresResponse(BaseModel):
    stores: list[StoreResponse]


class CategoryRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)


class CategoryResponse(BaseModel):
    id: str
    store_id: str
    name: str
    created_at: float


class ListCategoriesResponse(BaseModel):
    categories: list[CategoryResponse]


class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    price: float = Field(..., ge=0)
    stock: int = Field(default=0, ge=0)
    category_id: Optional[str] = None
    image_urls: list[str] = Field(default_factory=list)


class ProductUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: Optional[float] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[str] = None
    image_urls: Optional[list[str]] = None


class ProductResponse(BaseModel):
    id: str
    store_id: str
    category_id: Optional[str] = None
    name: str
    description: str
    price: float
    stock: int
    image_urls: list[str]
    created_at: float


class ListProductsResponse(BaseModel):
    products: list[ProductResponse]
