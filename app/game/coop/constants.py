from __future__ import annotations

from app.core.config import get_settings

STATUS_PENDING = "pending"
STATUS_READY = "ready"
STATUS_IN_PROGRESS = "in_progress"
STATUS_CANCELLED = "cancelled"
STATUS_EXPIRED = "expired"
TERMINAL_STATUSES = frozenset({STATUS_CANCELLED, STATUS_EXPIRED})
PRE_LAUNCH_STATUSES = frozenset({STATUS_PENDING, STATUS_READY})

CORRECTION_MODE_POSITIVE = "positive"
CORRECTION_MODE_STANDARD = "standard"
CORRECTION_MODE_BINARY = "binary"
CORRECTION_MODES = frozenset(
    {CORRECTION_MODE_POSITIVE, CORRECTION_MODE_STANDARD, CORRECTION_MODE_BINARY}
)
DEFAULT_CORRECTION_MODE = CORRECTION_MODE_STANDARD

MIN_QUESTION_COUNT = 5
MAX_QUESTION_COUNT = 50
DEFAULT_QUESTION_COUNT = 40
LEVEL_QUESTION_COUNTS: dict[str, int] = {
    "facile": 40,
    "moyen": 60,
    "difficile": 90,
}
WRONG_PICK_PENALTY = 0.25

PENDING_TTL_SECONDS = 30 * 60
IN_PROGRESS_TTL_SECONDS = 6 * 3600
RESULTS_COMPLETE_TTL_SECONDS = 3600
CANCELLED_TTL_SECONDS = 10 * 60

SUBMIT_CLAIM_ATTEMPTS = 3

SAMPLE_CACHE_TTL_SECONDS = max(1, int(get_settings().coop_sample_cache_ttl_seconds))
SAMPLE_CACHE_MAX_ENTRIES = 256
SWEEP_INTERVAL_SECONDS = max(5, int(get_settings().coop_sweep_interval_seconds))
INACTIVITY_SECONDS = max(30, int(get_settings().coop_inactivity_seconds))
SWEEP_BATCH_SIZE = max(1, int(get_settings().coop_sweep_batch_size))

EVENT_INVITE_RECEIVED = "coop:invite_received"
EVENT_SESSION_UPDATED = "coop:session_updated"
EVENT_SESSION_READY = "coop:session_ready"
EVENT_SESSION_STARTED = "coop:session_started"
EVENT_OPPONENT_ANSWERED = "coop:opponent_answered"
EVENT_BOTH_ANSWERED = "coop:both_answered"
EVENT_SESSION_FINISHED = "coop:session_finished"
EVENT_SESSION_CANCELLED = "coop:session_cancelled"
EVENT_OPPONENT_ABANDONED = "coop:opponent_abandoned"
EVENT_SNAPSHOT = "coop:snapshot"
