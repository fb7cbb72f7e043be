from __future__ import annotations


class ChallengeError(Exception):
    """Base for every domain error the challenge engine surfaces to callers."""
    status_code = 400
    code = "challenge_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)


class InvalidGoal(ChallengeError):
    """Goal target must be a positive number with a supported unit"""
    status_code = 422
    code = "invalid_goal"


class InvalidTimeWindow(ChallengeError):
    """end_date must be after start_date"""
    status_code = 422
    code = "invalid_time_window"


class ChallengeFull(ChallengeError):
    """Challenge is full"""
    status_code = 409
    code = "challenge_full"


class AlreadyJoined(ChallengeError):
    """User already participating"""
    status_code = 409
    code = "already_joined"


class NotAParticipant(ChallengeError):
    """User is not an active participant of this challenge"""
    status_code = 403
    code = "not_a_participant"


class NotFound(ChallengeError):
    """Challenge not found"""
    status_code = 404
    code = "not_found"


class DuplicateJoinCode(ChallengeError):
    """Join code is already in use"""
    status_code = 409
    code = "duplicate_join_code"


class ActivityTypeNotAllowed(ChallengeError):
    """Activity type does not count toward this challenge"""
    status_code = 422
    code = "activity_type_not_allowed"


class ConcurrentUpdateFailed(ChallengeError):
    """Challenge was updated concurrently; retries exhausted"""
    status_code = 503
    code = "concurrent_update_failed"


class AccessDenied(ChallengeError):
    """Access denied"""
    status_code = 403
    code = "access_denied"


class ChallengeClosed(ChallengeError):
    """Challenge is completed or cancelled"""
    status_code = 409
    code = "challenge_closed"


class InvalidStatusTransition(ChallengeError):
    """Status transition not allowed"""
    status_code = 409
    code = "invalid_status_transition"


class InvalidContribution(ChallengeError):
    """Activity contributions must be non-negative"""
    status_code = 422
    code = "invalid_contribution"


class InvalidChallengeUpdate(ChallengeError):
    """Challenge update rejected"""
    status_code = 422
    code = "invalid_challenge_update"
