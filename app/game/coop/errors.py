class CoopError(Exception):
    code = "E_COOP"
    kind = "conflict"
    message = "Coop session error."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class CoopValidationError(CoopError):
    kind = "validation"


class CoopPermissionError(CoopError):
    kind = "permission"


class CoopConflictError(CoopError):
    kind = "conflict"


class CoopNotFoundError(CoopError):
    kind = "not_found"


class CoopResourceUnavailableError(CoopError):
    kind = "resource_unavailable"


class CoopTransientError(CoopError):
    kind = "transient"


class InvalidIdentifierError(CoopValidationError):
    code = "E_COOP_INVALID_ID"
    message = "Invalid identifier."


class InvalidSelectionError(CoopValidationError):
    code = "E_COOP_INVALID_SELECTION"
    message = "Selected options are invalid for the question."


class CountOutOfRangeError(CoopValidationError):
    code = "E_COOP_COUNT_OUT_OF_RANGE"
    message = "Question count is out of range."


class InvalidDurationError(CoopValidationError):
    code = "E_COOP_INVALID_DURATION"
    message = "Duration must be a finite non-negative number."


class InvalidFiltersError(CoopValidationError):
    code = "E_COOP_INVALID_FILTERS"
    message = "Invalid session filters."


class NotParticipantError(CoopPermissionError):
    code = "E_COOP_NOT_PARTICIPANT"
    message = "You are not a participant of this coop session."


class NotInitiatorError(CoopPermissionError):
    code = "E_COOP_NOT_INITIATOR"
    message = "Only the initiator can change the session settings."


class AlreadySubmittedOrInactiveError(CoopConflictError):
    code = "E_COOP_ALREADY_SUBMITTED"
    message = "Result already submitted or session not in progress."


class SessionInactiveError(CoopConflictError):
    code = "E_COOP_SESSION_INACTIVE"
    message = "The coop session is no longer active."


class SessionNotEditableError(CoopConflictError):
    code = "E_COOP_SESSION_NOT_EDITABLE"
    message = "The coop session can no longer be edited."


class NotAllReadyError(CoopConflictError):
    code = "E_COOP_NOT_ALL_READY"
    message = "Both participants must be ready."


class AlreadyActiveSessionError(CoopConflictError):
    code = "E_COOP_ALREADY_ACTIVE"
    message = "A coop session is already active for one of the participants."


class SelfTargetError(CoopConflictError):
    code = "E_COOP_SELF_TARGET"
    message = "You cannot start a coop session with yourself."


class NotFriendsError(CoopConflictError):
    code = "E_COOP_NOT_FRIENDS"
    message = "Coop sessions are only available between friends."


class SessionNotFoundError(CoopNotFoundError):
    code = "E_COOP_SESSION_NOT_FOUND"
    message = "Coop session not found."


class NoQuestionsAvailableError(CoopResourceUnavailableError):
    code = "E_COOP_NO_QUESTIONS"
    message = "No questions match the session filters."


class NoQuestionsToGradeError(CoopResourceUnavailableError):
    code = "E_COOP_NO_QUESTIONS_TO_GRADE"
    message = "The session has no questions to grade."


class CoopStorageUnavailableError(CoopTransientError):
    code = "E_COOP_STORAGE_UNAVAILABLE"
    message = "Storage is temporarily unavailable, please retry."
