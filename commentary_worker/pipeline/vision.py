import base64
import logging
from typing import Any, Dict, List

from ..errors import VisionError

logger = logging.getLogger("commentary_worker")

VISION_PROMPT = (
    "Analyze these video frames. Provide a concise, comma-separated list of key actions, "
    "objects, or scenes depicted. Focus on elements relevant for generating commentary. "
    "Example: 'man smiles, dog jumps, logo appears'. Max 100 words total."
)

PLACEHOLDER_DESCRIPTION = "No visual description available."


def encode_frame(frame_path: str) -> Dict[str, Any]:
    """Frame as an image_url content part with a base64 data URL"""
    with open(frame_path, 'rb') as image_file:
        base64_image = base64.b64encode(image_file.read()).decode('utf-8')
    return {
        "type": "image_url",
        "image_url": {"url": f"data:image/jpeg;base64,{base64_image}"}
    }


def build_vision_messages(frame_paths: List[str]) -> List[Dict[str, Any]]:
    content = [{"type": "text", "text": VISION_PROMPT}]
    content.extend(encode_frame(frame_path) for frame_path in frame_paths)
    return [{"role": "user", "content": content}]


def describe_frames(
    client: Any,
    frame_paths: List[str],
    job_id: str,
    model: str = "gpt-4o",
    max_tokens: int = 150
) -> str:
    """
    Describe the sampled frames in one batched vision request.

    Returns:
        Compact comma-separated scene description

    Raises:
        VisionError when there is nothing to describe or the service fails
    """
    if not frame_paths:
        raise VisionError("No frames available for vision analysis")

    logger.info(f"Job {job_id}: analyzing {len(frame_paths)} frames with {model}")

    try:
        messages = build_vision_messages(frame_paths)
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens
        )
    except OSError as e:
        raise VisionError(f"Could not read frame for vision analysis: {e}") from e
    except Exception as e:
        raise VisionError(f"Vision service error: {e}") from e

    choices = getattr(response, 'choices', None) or []
    content = choices[0].message.content if choices else None
    if not content or not content.strip():
        raise VisionError("Vision analysis did not return content")

    description = content.strip()
    logger.info(f"Job {job_id}: vision analysis completed ({len(description)} chars)")
    return description
