"""
Custom exceptions

All business errors live here so the API layer can map them uniformly.
Each LovedException carries the HTTP status the API layer responds with.
"""


class LovedException(Exception):
    """Base class for every recoverable business error"""
    status_code = 400


class ValidationError(LovedException):
    """Malformed or out-of-range input, or a target in an ineligible state"""
    status_code = 422


class NotFound(LovedException):
    """Referenced entity does not exist or cannot be resolved"""
    status_code = 404


class Forbidden(LovedException):
    """Capability or ownership check failed"""
    status_code = 403


class Conflict(LovedException):
    """The write would duplicate an existing entity"""
    status_code = 409


# ============ Not found ============

class NominationNotFound(NotFound):
    def __init__(self, nomination_id):
        self.nomination_id = nomination_id
        super().__init__(f"Nomination {nomination_id} not found")


class RoundNotFound(NotFound):
    def __init__(self, round_id):
        self.round_id = round_id
        super().__init__(f"Round {round_id} not found")


class ReviewNotFound(NotFound):
    def __init__(self, review_id):
        self.review_id = review_id
        super().__init__(f"Review {review_id} not found")


class UserNotFound(NotFound):
    def __init__(self, user):
        self.user = user
        super().__init__(f"User {user} not found")


class BeatmapsetNotFound(NotFound):
    def __init__(self, beatmapset_id):
        self.beatmapset_id = beatmapset_id
        super().__init__(f"Beatmapset #{beatmapset_id} not found")


# ============ Conflicts ============

class DuplicateNomination(Conflict):
    """The beatmapset is already nominated in this round and game mode"""
    pass


# ============ Fatal ============

class InvariantViolation(RuntimeError):
    """
    A row the handler just wrote is missing, or similar storage inconsistency

    Not a LovedException: it is never reported as a client error.
    """
    pass
