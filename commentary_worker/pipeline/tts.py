import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..errors import SynthesisError
from ..models import DialogueLine, SynthesisResult

logger = logging.getLogger("commentary_worker")

VOICE_PALETTE = ("alloy", "fable", "onyx", "nova", "shimmer", "echo")


class VoiceAssigner:
    """
    Assigns palette voices to speakers in first-seen order.

    Speaker N (0-based, by first appearance) gets palette[N % len(palette)];
    the mapping never changes once made.
    """

    def __init__(self, palette: Sequence[str] = VOICE_PALETTE):
        if not palette:
            raise ValueError("Voice palette must not be empty")
        self.palette = tuple(palette)
        self.mapping: Dict[str, str] = {}

    def voice_for(self, speaker: str) -> str:
        if speaker not in self.mapping:
            self.mapping[speaker] = self.palette[len(self.mapping) % len(self.palette)]
        return self.mapping[speaker]

    def assign_all(self, lines: Sequence[DialogueLine]) -> List[str]:
        return [self.voice_for(line.speaker) for line in lines]


async def synthesize_line_async(
    client: Any,
    line: DialogueLine,
    voice: str,
    speed: float,
    index: int,
    semaphore: asyncio.Semaphore,
    job_id: str,
    model: str = "tts-1-hd"
) -> bytes:
    """Voice one dialogue line as WAV"""
    async with semaphore:
        logger.debug(f"Job {job_id}: TTS line {index} for {line.speaker} with voice {voice}, pace {speed}")
        try:
            response = await client.audio.speech.create(
                model=model,
                voice=voice,
                input=line.text,
                response_format="wav",
                speed=speed
            )
            audio = response.content
        except Exception as e:
            raise SynthesisError(f"TTS failed for line {index} ({line.speaker}): {e}", line_index=index) from e

        if not audio:
            raise SynthesisError(f"TTS returned empty audio for line {index} ({line.speaker})", line_index=index)
        return audio


async def synthesize_lines_parallel(
    client_factory: Callable[[], Any],
    lines: Sequence[DialogueLine],
    voices: Sequence[str],
    speed: float,
    job_id: str,
    model: str = "tts-1-hd",
    max_concurrent: int = 4
) -> List[Any]:
    """
    Fan out one TTS request per line with bounded concurrency.

    Returns:
        bytes or the raised exception for each line, in line order
    """
    semaphore = asyncio.Semaphore(max_concurrent)
    try:
        client = client_factory()
    except Exception as e:
        raise SynthesisError(f"Could not create TTS client: {e}") from e

    try:
        tasks = [
            synthesize_line_async(client, line, voice, speed, i, semaphore, job_id, model)
            for i, (line, voice) in enumerate(zip(lines, voices))
        ]
        # gather preserves argument order, which is the join point for line order
        return await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        try:
            await client.close()
        except Exception as e:
            # Audio already produced stays valid
            logger.warning(f"Job {job_id}: error closing TTS client: {e}")


def synthesize_dialogue(
    client_factory: Callable[[], Any],
    lines: Sequence[DialogueLine],
    speaking_pace: float,
    job_id: str,
    model: str = "tts-1-hd",
    max_concurrent: int = 4,
    assigner: Optional[VoiceAssigner] = None
) -> SynthesisResult:
    """
    Synthesize every dialogue line.

    Per-line failures are reported in the result and leave a None in that
    line's slot; they never discard audio produced for other lines.
    """
    assigner = assigner or VoiceAssigner()
    voices = assigner.assign_all(lines)

    if not lines:
        return SynthesisResult(buffers=[], voices=dict(assigner.mapping))

    start_time = time.time()
    logger.info(
        f"Job {job_id}: synthesizing {len(lines)} lines with up to {max_concurrent} concurrent requests "
        f"(voices: {assigner.mapping})"
    )

    outcomes = asyncio.run(
        synthesize_lines_parallel(client_factory, lines, voices, speaking_pace, job_id, model, max_concurrent)
    )

    buffers: List[Optional[bytes]] = []
    errors: List[str] = []
    for i, outcome in enumerate(outcomes):
        if isinstance(outcome, BaseException):
            logger.error(f"Job {job_id}: TTS failed for line {i}: {outcome}")
            errors.append(str(outcome))
            buffers.append(None)
        else:
            buffers.append(outcome)

    elapsed = time.time() - start_time
    produced = len(buffers) - len(errors)
    logger.info(f"Job {job_id}: TTS produced {produced}/{len(lines)} lines in {elapsed:.2f}s")

    return SynthesisResult(buffers=buffers, voices=dict(assigner.mapping), errors=errors)
