# cam_explainer/utils/io.py

# Import async file handling and PIL
import io
from pathlib import Path

import aiofiles
from PIL import Image


async def async_load_image(path: Path) -> Image.Image:
    """
    Asynchronously read an image file and decode it to RGB.
    """
    # aiofiles is used for async I/O; PIL handles image decoding
    async with aiofiles.open(path, "rb") as f:
        data = await f.read()
    return Image.open(io.BytesIO(data)).convert("RGB")
