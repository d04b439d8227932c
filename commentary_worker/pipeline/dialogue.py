import re
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..errors import DialogueGenerationError
from ..models import DialogueLine, DialogueScript, Persona
from .util import preview

logger = logging.getLogger("commentary_worker")

PLACEHOLDER_TRANSCRIPT = "Unable to generate transcript summary."

# "SPEAKER: text"; the label may not itself contain a colon
DIALOGUE_LINE_RE = re.compile(r"^([^:]+):[*_]*\s*(.+)$")

# Longest plausible speaker label; longer prefixes are prose containing a colon
MAX_SPEAKER_LABEL_CHARS = 40

FORMAT_RULES = """Output format must be:
CHARACTER_NAME: Dialogue text

Rules:
- One line per utterance, each starting with the character's name exactly as given.
- Keep each line concise and natural-sounding (15-20 words maximum per line).
- Don't narrate actions or add stage directions, just create dialogue as if the characters are watching and reacting to the video in real-time.
- Each character must stay in their defined personality and respect their constraints.
- Keep it playful; no slurs, harassment or explicit content."""


def _describe_persona(index: int, persona: Persona) -> str:
    parts = [f"{index}. {persona.name}: {persona.style or 'No specific style defined'}"]
    if persona.constraints:
        parts.append(f"   Constraints: {persona.constraints}")
    if persona.backstory:
        parts.append(f"   Backstory: {persona.backstory}")
    return "\n".join(parts)


def build_dialogue_prompt(
    personas: Sequence[Persona],
    transcript: str,
    frame_descriptions: Optional[str],
    user_guidance: Optional[str] = None
) -> List[Dict[str, str]]:
    """Build the system + user messages for dialogue generation"""
    roster = "\n".join(_describe_persona(i, persona) for i, persona in enumerate(personas, 1))

    system_prompt = f"""You are an AI generating engaging and entertaining commentary for videos.
You will create a dialogue script between the following characters:

{roster}

The dialogue should be reactions to the video content I'll provide. Make it entertaining, funny, and engaging.

{FORMAT_RULES}"""

    sections = [
        "Here's the video content to react to:",
        f"TRANSCRIPT:\n{transcript}",
        f"VISUAL ELEMENTS:\n{frame_descriptions or 'None provided.'}",
    ]
    if user_guidance:
        sections.append(f"ADDITIONAL GUIDANCE: {user_guidance}")
    sections.append(
        "Create a dialogue script with the characters reacting to this content. "
        "Make it entertaining and funny - the characters should have strong opinions and unique perspectives."
    )

    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": "\n\n".join(sections)},
    ]


def _match_line(line: str) -> Optional[DialogueLine]:
    match = DIALOGUE_LINE_RE.match(line)
    if not match:
        return None
    # Models sometimes emphasize labels: "**Alice**:", "**Alice:**" or "- Alice:"
    speaker = match.group(1).strip().strip("*_-# ").strip()
    text = match.group(2).strip()
    if not speaker or not text or len(speaker) > MAX_SPEAKER_LABEL_CHARS:
        return None
    return DialogueLine(speaker=speaker, text=text)


def parse_dialogue_response(response: Optional[str]) -> List[DialogueLine]:
    """Parse "label: content" lines in order; anything else is dropped"""
    return parse_dialogue_script(response).lines


def parse_dialogue_script(response: Optional[str]) -> DialogueScript:
    """
    Parse a completion reply into a DialogueScript.

    A non-matching line after the last dialogue line is kept as the closing
    remark; other non-matching lines are dropped.
    """
    if not response:
        return DialogueScript(lines=[], raw_text=response or "")

    lines: List[DialogueLine] = []
    trailing: List[str] = []

    for raw_line in response.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        parsed = _match_line(line)
        if parsed:
            lines.append(parsed)
            trailing = []
        elif lines:
            trailing.append(line)

    closing_remark = " ".join(trailing) if trailing else None
    return DialogueScript(lines=lines, closing_remark=closing_remark, raw_text=response)


def generate_dialogue(
    client: Any,
    personas: Sequence[Persona],
    transcript: str,
    frame_descriptions: Optional[str],
    user_guidance: Optional[str],
    job_id: str,
    model: str = "gpt-4o",
    max_tokens: int = 280,
    temperature: float = 0.7
) -> DialogueScript:
    """
    Request the commentary script and parse it.

    An empty parse is a valid result; a failed call or empty reply raises.
    """
    messages = build_dialogue_prompt(personas, transcript, frame_descriptions, user_guidance)

    logger.info(f"Job {job_id}: generating dialogue for {len(personas)} personas")
    logger.debug(f"Job {job_id}: transcript for prompt: {preview(transcript)}")

    try:
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature
        )
    except Exception as e:
        raise DialogueGenerationError(f"Completion service error: {e}") from e

    choices = getattr(response, 'choices', None) or []
    content = choices[0].message.content if choices else None
    if not content:
        raise DialogueGenerationError("No response content from completion service")

    script = parse_dialogue_script(content)
    logger.info(f"Job {job_id}: parsed {len(script.lines)} dialogue lines")
    if script.is_empty:
        logger.warning(f"Job {job_id}: completion reply had no speaker lines: {preview(content)}")

    return script
