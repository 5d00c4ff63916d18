"""
Cached settings and controller for the HTTP layer.
"""

from __future__ import annotations
from functools import lru_cache

from code_gen_config import GeneratorSettings

from .controller import StorefrontGenerationController


@lru_cache(maxsize=1)
def get_settings() -> GeneratorSettings:
    return GeneratorSettings.from_env()


@lru_cache(maxsize=1)
def get_controller() -> StorefrontGenerationController:
    return StorefrontGenerationController.from_settings(get_settings())
