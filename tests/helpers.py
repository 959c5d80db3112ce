"""Shared builders for settings and in-memory test images."""

from __future__ import annotations

import io
import random
from typing import Any

from PIL import Image
from pydantic import SecretStr

from photo_editor.config import Settings


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "openrouter_api_key": SecretStr("test-key"),
        "base_url": "https://openrouter.example.com/api/v1",
        "proxy_url": "http://proxy.test",
    }
    values.update(overrides)
    return Settings(**values)  # pyright: ignore[reportCallIssue]


def noise_image_bytes(
    size: tuple[int, int] = (512, 512),
    *,
    mode: str = "RGB",
    fmt: str = "PNG",
    seed: int = 7,
) -> bytes:
    """Encode seeded random noise, which compresses poorly in any format."""

    channels = len(mode)
    rng = random.Random(seed)
    raw = rng.randbytes(size[0] * size[1] * channels)
    image = Image.frombytes(mode, size, raw)
    out = io.BytesIO()
    image.save(out, format=fmt)
    return out.getvalue()


def solid_png_bytes(size: tuple[int, int] = (8, 8)) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(out, format="PNG")
    return out.getvalue()
