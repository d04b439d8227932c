"""
Domain models for the commentary worker.

Defines the core data structures used throughout the system,
providing type safety and clear interfaces between components.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Job status values
QUEUED = "queued"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

TERMINAL_STATUSES = (COMPLETED, FAILED)

# TTS service accepts speeds in this range
MIN_SPEAKING_PACE = 0.25
MAX_SPEAKING_PACE = 4.0


@dataclass(frozen=True)
class Persona:
    """A commentator captured into a job; immutable once captured"""
    name: str
    style: Optional[str] = None
    constraints: Optional[str] = None
    backstory: Optional[str] = None
    voice_preference: Optional[str] = None
    tags: tuple = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Persona':
        return cls(
            name=data['name'],
            style=data.get('style'),
            constraints=data.get('constraints'),
            backstory=data.get('backstory'),
            voice_preference=data.get('voice_preference') or data.get('voicePreference'),
            tags=tuple(data.get('tags') or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['tags'] = list(self.tags)
        return data


@dataclass
class VideoJob:
    """Represents a commentary generation job"""
    id: str
    source_video_url: str
    personas: List[Persona]
    speaking_pace: float = 1.0
    user_guidance: Optional[str] = None
    transcript_summary: Optional[str] = None
    status: str = QUEUED
    error_message: Optional[str] = None
    status_message: Optional[str] = None
    result_refs: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Transport details (e.g. SQS receipt handle); never persisted
    delivery: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class DialogueLine:
    """One speaker-attributed utterance in the generated script"""
    speaker: str
    text: str

    def to_dict(self) -> Dict[str, str]:
        return {'speaker': self.speaker, 'text': self.text}


@dataclass
class DialogueScript:
    """Parsed completion reply: ordered lines plus an optional unvoiced closing remark"""
    lines: List[DialogueLine]
    closing_remark: Optional[str] = None
    raw_text: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.lines


@dataclass
class CachedVideoAsset:
    """Previously computed analysis of a source video, keyed by canonical identifier"""
    source_video_identifier: str
    clipped_video_ref: Optional[str] = None
    audio_transcript: Optional[str] = None
    frame_descriptions: Optional[str] = None
    frame_refs: List[str] = field(default_factory=list)
    processed_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None


@dataclass
class SynthesisResult:
    """Per-line audio in original line order; failed lines hold None"""
    buffers: List[Optional[bytes]]
    voices: Dict[str, str]
    errors: List[str] = field(default_factory=list)

    @property
    def produced(self) -> List[bytes]:
        return [buffer for buffer in self.buffers if buffer is not None]

    @property
    def all_failed(self) -> bool:
        return bool(self.buffers) and not self.produced


# Stage outcome values
STAGE_OK = "ok"
STAGE_SOFT_FAILED = "soft_failed"
STAGE_FATAL = "fatal"


@dataclass
class StageResult:
    """Outcome of one pipeline stage"""
    stage: str
    outcome: str
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == STAGE_OK

    @property
    def fatal(self) -> bool:
        return self.outcome == STAGE_FATAL


@dataclass
class ProcessingResult:
    """Represents the result of processing one job"""
    success: bool
    stages_completed: List[str]
    status_message: Optional[str] = None
    error: Optional[str] = None
    result_refs: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    processing_time_sec: Optional[float] = None


class PersonaPayload(BaseModel):
    """Persona as delivered in a dispatch message"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    style: Optional[str] = None
    constraints: Optional[str] = None
    backstory: Optional[str] = None
    voice_preference: Optional[str] = Field(default=None, alias="voicePreference")
    tags: Optional[List[str]] = None

    def to_persona(self) -> Persona:
        return Persona(
            name=self.name.strip(),
            style=self.style,
            constraints=self.constraints,
            backstory=self.backstory,
            voice_preference=self.voice_preference,
            tags=tuple(self.tags or ()),
        )


class JobPayload(BaseModel):
    """Dispatch message for one job: {jobId, videoUrl, personas, speakingPace, userGuidance}"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    job_id: str = Field(alias="jobId", min_length=1)
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    personas: List[PersonaPayload] = Field(min_length=1)
    speaking_pace: float = Field(default=1.0, alias="speakingPace")
    user_guidance: Optional[str] = Field(default=None, alias="userGuidance")
    transcript_summary: Optional[str] = Field(default=None, alias="transcriptSummary")

    @field_validator("video_url", "user_guidance", "transcript_summary")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("speaking_pace", mode="before")
    @classmethod
    def _default_pace(cls, value: Any) -> Any:
        return 1.0 if value in (None, "", 0) else value

    @field_validator("speaking_pace")
    @classmethod
    def _pace_in_range(cls, value: float) -> float:
        if not MIN_SPEAKING_PACE <= value <= MAX_SPEAKING_PACE:
            raise ValueError(f"speakingPace must be between {MIN_SPEAKING_PACE} and {MAX_SPEAKING_PACE}")
        return value

    @model_validator(mode="after")
    def _requires_source(self) -> 'JobPayload':
        if not self.video_url and not self.transcript_summary:
            raise ValueError("Either videoUrl or transcriptSummary is required")
        return self

    def to_job(self) -> VideoJob:
        return VideoJob(
            id=self.job_id,
            source_video_url=self.video_url or "",
            personas=[persona.to_persona() for persona in self.personas],
            speaking_pace=self.speaking_pace,
            user_guidance=self.user_guidance,
            transcript_summary=self.transcript_summary,
        )
