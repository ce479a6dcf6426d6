"""
Image prompt construction for vision requests.
"""

from typing import Any, Dict

from ..core.prompts import parse_template

IMAGE_DETAIL = "high"


def build_image_prompt(image_url: str) -> Dict[str, Any]:
    """Build the user message pairing an image with the fixed vision instructions."""
    if not image_url:
        raise ValueError("image_url is required and cannot be empty")
    return {
        "role": "user",
        "content": [
            {
                "type": "image_url",
                "image_url": {
                    "url": image_url,
                    "detail": IMAGE_DETAIL,
                },
            },
            {
                "type": "text",
                "text": parse_template("dev", "vision", "user"),
            },
        ],
    }
