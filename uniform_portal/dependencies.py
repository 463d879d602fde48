from __future__ import annotations

from functools import lru_cache

from fastapi import Request

from uniform_portal.config import CycleConfig, settings
from uniform_portal.services.field_cipher import FieldCipher


@lru_cache(maxsize=1)
def get_field_cipher() -> FieldCipher:
    return FieldCipher.from_settings(settings)


@lru_cache(maxsize=1)
def get_cycle_config() -> CycleConfig:
    return CycleConfig.from_settings(settings)


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None
