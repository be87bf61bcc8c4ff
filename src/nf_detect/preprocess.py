from __future__ import annotations

import io
from typing import Final

import torch
from PIL import Image, ImageFile, ImageOps, UnidentifiedImageError
from torch import Tensor

from .errors import DecodeError

ImageFile.LOAD_TRUNCATED_IMAGES = False

INPUT_SIZE: Final[int] = 320
MEAN: Final[tuple[float, float, float]] = (0.485, 0.456, 0.406)
STD: Final[tuple[float, float, float]] = (0.229, 0.224, 0.225)
_PREPROCESS_SIGNATURE: Final[str] = "v1/rgb+exif+stretch320+bilinear+imagenetnorm+nchw"


def preprocess(raw: bytes) -> Tensor:
    """Turn encoded image bytes into a ``[1, 3, 320, 320]`` float32 tensor.

    The image is stretched to 320x320 (aspect ratio is not kept), scaled to
    [0, 1], standardized per channel with ``MEAN``/``STD`` and laid out
    channel-major. Alpha is dropped.
    """
    img = decode_image(raw)
    resized = img.resize((INPUT_SIZE, INPUT_SIZE), resample=Image.Resampling.BILINEAR)
    return to_tensor(resized)


def decode_image(raw: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except UnidentifiedImageError:
        raise DecodeError("Failed to decode image") from None
    except Image.DecompressionBombError:
        raise DecodeError("Image is too large to decode") from None
    except (OSError, ValueError, SyntaxError) as exc:
        # Truncated or corrupt payloads surface from load()
        raise DecodeError(f"Failed to decode image: {exc}") from None
    oriented = ImageOps.exif_transpose(img)
    if oriented is None:
        raise DecodeError("EXIF transpose failed")
    # convert() drops alpha rather than compositing it
    return oriented.convert("RGB")


def to_tensor(img: Image.Image) -> Tensor:
    width, height = img.size
    buf = bytearray(img.tobytes())
    if len(buf) != width * height * 3:
        raise DecodeError("unexpected pixel buffer size")
    hwc = torch.frombuffer(buf, dtype=torch.uint8).reshape(height, width, 3)
    chw = hwc.permute(2, 0, 1).to(dtype=torch.float32) / 255.0
    mean = torch.tensor(MEAN, dtype=torch.float32).view(3, 1, 1)
    std = torch.tensor(STD, dtype=torch.float32).view(3, 1, 1)
    normalized = (chw - mean) / std
    return normalized.contiguous().unsqueeze(0)


def preprocess_signature() -> str:
    return _PREPROCESS_SIGNATURE
