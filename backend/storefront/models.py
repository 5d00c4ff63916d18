"""
Storefront Generation Models
店铺代码生成请求模型
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_INDUSTRY = "cannabis"


@dataclass(frozen=True)
class GenerationRequest:
    """One generation request, immutable for its whole lifetime"""
    prompt: str
    vendor_id: str
    vendor_name: str
    industry: str = DEFAULT_INDUSTRY
    full_code: Optional[str] = None
    reference_url: Optional[str] = None
    is_editing_existing: bool = False
    conversation_id: Optional[str] = None
    manual_mode: bool = False

    @property
    def editing(self) -> bool:
        return bool(self.is_editing_existing and self.full_code)


class StorefrontGenerateRequest(BaseModel):
    """Request body for POST /api/ai/storefront-generate (camelCase on the wire)"""
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(..., description="What to build or change")
    full_code: Optional[str] = Field(None, alias="fullCode", description="Current storefront code")
    vendor_id: str = Field(..., alias="vendorId", description="Vendor ID")
    vendor_name: str = Field(..., alias="vendorName", description="Vendor display name")
    industry: Optional[str] = Field(DEFAULT_INDUSTRY, description="Industry tag")
    reference_url: Optional[str] = Field(None, alias="referenceUrl", description="Reference website URL")
    is_editing_existing: bool = Field(False, alias="isEditingExisting", description="Edit existing code")
    conversation_id: Optional[str] = Field(None, alias="conversationId", description="Conversation to continue")
    manual_mode: bool = Field(False, alias="manualMode", description="Open a visible browser for manual interaction")

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt.strip(),
            vendor_id=self.vendor_id,
            vendor_name=self.vendor_name,
            industry=self.industry or DEFAULT_INDUSTRY,
            full_code=self.full_code or None,
            reference_url=(self.reference_url or "").strip() or None,
            is_editing_existing=self.is_editing_existing,
            conversation_id=self.conversation_id or None,
            manual_mode=self.manual_mode,
        )
