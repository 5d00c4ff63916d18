"""
Storefront Generation Module
店铺代码生成模块
"""

from .controller import StorefrontGenerationController
from .events import EventKind, EventStream, encode_frame
from .models import GenerationRequest, StorefrontGenerateRequest
from .routes import router

__all__ = [
    "StorefrontGenerationController",
    "EventKind",
    "EventStream",
    "encode_frame",
    "GenerationRequest",
    "StorefrontGenerateRequest",
    "router",
]
