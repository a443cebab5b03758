"""
prizepool/exceptions.py
Domain exceptions for the settlement core.

Every error carries a stable machine-readable code, a human-readable
message and optional details (current state, allowed transitions,
required amounts). The error kind decides the HTTP status:

- ValidationError        400  malformed input, rejected before any state change
- StateConflict          409  operation not valid in the current state
- InsufficientResource   422  not enough teams / funds
- NotFound               404  missing tournament, match, pool, wallet...
"""
from typing import Any, Dict, List, Optional


class SettlementError(Exception):
    """Base exception for the settlement core"""
    status_code: int = 500
    kind: str = "SettlementError"

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(SettlementError):
    status_code = 400
    kind = "ValidationError"


class StateConflict(SettlementError):
    status_code = 409
    kind = "StateConflict"


class InsufficientResource(SettlementError):
    status_code = 422
    kind = "InsufficientResource"


class NotFound(SettlementError):
    status_code = 404
    kind = "NotFound"

    def __init__(self, resource: str, identifier: Any = None, code: str = "NOT_FOUND"):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message, code, {"resource": resource, "id": identifier})


# =============================================================================
# Not found
# =============================================================================

class TournamentNotFound(NotFound):
    def __init__(self, tournament_id: Any):
        super().__init__("Tournament", tournament_id, "TOURNAMENT_NOT_FOUND")


class MatchNotFound(NotFound):
    def __init__(self, match_id: Any):
        super().__init__("Match", match_id, "MATCH_NOT_FOUND")


class PoolNotFound(NotFound):
    def __init__(self, tournament_id: Any):
        super().__init__("Escrow pool for tournament", tournament_id, "POOL_NOT_FOUND")


class TransactionNotFound(NotFound):
    def __init__(self, transaction_id: Any):
        super().__init__("Transaction", transaction_id, "TRANSACTION_NOT_FOUND")


class TeamNotFound(NotFound):
    def __init__(self, team_id: Any):
        super().__init__("Team", team_id, "TEAM_NOT_FOUND")


# =============================================================================
# Validation
# =============================================================================

class InvalidAmount(ValidationError):
    def __init__(self, amount: Any):
        super().__init__(
            f"Amount must be positive, got {amount}",
            "INVALID_AMOUNT",
            {"amount": str(amount)}
        )


class ReasonTooShort(ValidationError):
    def __init__(self, min_length: int):
        super().__init__(
            f"Override reason must be at least {min_length} characters.",
            "REASON_TOO_SHORT",
            {"min_length": min_length}
        )


class InvalidPrizeRules(ValidationError):
    def __init__(self, reason: str):
        super().__init__(f"Invalid prize distribution: {reason}", "INVALID_PRIZE_RULES")


class InvalidMatchResults(ValidationError):
    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Invalid match results: {reason}", "INVALID_MATCH_RESULTS", details)


class DuplicateReference(ValidationError):
    def __init__(self, reference: str):
        super().__init__(
            "This payment reference has already been submitted",
            "DUPLICATE_REFERENCE",
            {"reference": reference}
        )


# =============================================================================
# State conflicts
# =============================================================================

class InvalidTransition(StateConflict):
    def __init__(self, current: str, requested: str, allowed: List[str]):
        super().__init__(
            f'Cannot transition tournament from "{current}" to "{requested}". '
            f'Allowed: [{", ".join(allowed)}]',
            "INVALID_TRANSITION",
            {"current_status": current, "requested_status": requested, "allowed": allowed}
        )


class StartDateExpired(StateConflict):
    def __init__(self, minutes_overdue: int):
        super().__init__(
            "Start date has already passed. Update the start date before opening.",
            "START_DATE_EXPIRED",
            {"minutes_overdue": minutes_overdue}
        )


class PoolAlreadyLocked(StateConflict):
    def __init__(self, current: str):
        super().__init__(f"Pool is already {current}", "POOL_ALREADY_LOCKED", {"current_status": current})


class PoolNotLocked(StateConflict):
    def __init__(self, current: str):
        super().__init__(
            "Pool must be LOCKED before distribution",
            "POOL_NOT_LOCKED",
            {"current_status": current}
        )


class PoolNotOpen(StateConflict):
    def __init__(self, current: str):
        super().__init__(
            f"Entry fees cannot be collected into a {current} pool",
            "POOL_NOT_OPEN",
            {"current_status": current}
        )


class AlreadyDistributed(StateConflict):
    def __init__(self):
        super().__init__(
            "Prizes already distributed, refund no longer applicable",
            "ALREADY_DISTRIBUTED",
            {"current_status": "DISTRIBUTED"}
        )


class NoLeaderboardEntries(StateConflict):
    def __init__(self, tournament_id: Any):
        super().__init__(
            "No leaderboard entries, cannot distribute",
            "NO_LEADERBOARD_ENTRIES",
            {"tournament_id": tournament_id}
        )


class AlreadyLocked(StateConflict):
    def __init__(self, match_id: Any, locked_by: str):
        super().__init__(
            "Result is already locked. Contact a SUPERADMIN to override.",
            "ALREADY_LOCKED",
            {"match_id": match_id, "locked_by": locked_by}
        )


class NoLockFound(StateConflict):
    def __init__(self, match_id: Any):
        super().__init__("No result lock found for this match", "NO_LOCK_FOUND", {"match_id": match_id})


class ResultLocked(StateConflict):
    def __init__(self, match_id: Any):
        super().__init__(
            "Match result is locked; an override is required before re-submitting",
            "RESULT_LOCKED",
            {"match_id": match_id}
        )


class TournamentNotLive(StateConflict):
    def __init__(self, current: str):
        super().__init__(
            f"Results can only be submitted while the tournament is LIVE (currently {current})",
            "TOURNAMENT_NOT_LIVE",
            {"current_status": current}
        )


class RegistrationClosed(StateConflict):
    def __init__(self, current: str):
        super().__init__(
            "Tournament is not open for registration",
            "REGISTRATION_CLOSED",
            {"current_status": current}
        )


class AlreadyRegistered(StateConflict):
    def __init__(self, user_id: str):
        super().__init__(
            "You are already registered for this tournament",
            "ALREADY_REGISTERED",
            {"user_id": user_id}
        )


class TournamentFrozen(StateConflict):
    def __init__(self, current: str, fields: List[str]):
        super().__init__(
            f"Fields {fields} cannot change once the tournament is {current}",
            "TOURNAMENT_FROZEN",
            {"current_status": current, "fields": fields}
        )


class TransactionNotPending(StateConflict):
    def __init__(self, current: str):
        super().__init__("Transaction is not pending", "TRANSACTION_NOT_PENDING", {"current_status": current})


class UnsupportedApproval(StateConflict):
    def __init__(self, tx_type: str):
        super().__init__(
            f"Unsupported transaction type for approval: {tx_type}",
            "UNSUPPORTED_APPROVAL",
            {"type": tx_type}
        )


class AuditLogImmutable(StateConflict):
    def __init__(self, operation: str):
        super().__init__(
            f"Compliance audit log is append-only ({operation} rejected)",
            "AUDIT_LOG_IMMUTABLE",
            {"operation": operation}
        )


# =============================================================================
# Insufficient resources
# =============================================================================

class InsufficientTeams(InsufficientResource):
    def __init__(self, required: int, actual: int):
        super().__init__(
            f"Cannot go LIVE: needs at least {required} registered teams, currently has {actual}.",
            "INSUFFICIENT_TEAMS",
            {"required": required, "actual": actual}
        )


class InsufficientFunds(InsufficientResource):
    def __init__(self, user_id: str, amount: Any):
        super().__init__(
            "Insufficient balance",
            "INSUFFICIENT_FUNDS",
            {"user_id": user_id, "amount": str(amount)}
        )


class TournamentFull(InsufficientResource):
    def __init__(self, max_teams: int):
        super().__init__("Tournament is full", "TOURNAMENT_FULL", {"max_teams": max_teams})
