"""Transcription status state machine for a Video.

    pending ──► processing ──► completed
                   ▲    └────► failed
                   └── (any state, on a new Transcribe call)

Re-entering ``processing`` is always allowed: there is no retry guard and no
protection against two concurrent Transcribe calls for the same video.
"""
from transcription_pipeline.models.pipeline import TranscriptionStatus, Video

S = TranscriptionStatus

ALLOWED_TRANSITIONS = {
    S.pending: {S.processing},
    S.processing: {S.processing, S.completed, S.failed},
    S.completed: {S.processing},
    S.failed: {S.processing},
}


class InvalidTransition(RuntimeError):
    pass


def can_transition(current: str | None, target: TranscriptionStatus) -> bool:
    try:
        state = S(current or S.pending.value)
    except ValueError:
        return False
    return target in ALLOWED_TRANSITIONS[state]


def transition(video: Video, target: TranscriptionStatus) -> None:
    if not can_transition(video.transcription_status, target):
        raise InvalidTransition(
            f"video {video.id}: {video.transcription_status} -> {target.value} is not allowed"
        )
    video.transcription_status = target.value
