"""
Error taxonomy.

Validation, authorization, state and capacity errors are permanent for the
given input. External dependency errors (randomness, price rate) may be
transient and carry ``retryable = True``; retrying is up to the caller.
"""

from __future__ import annotations


class MeltyFiError(RuntimeError):
    retryable = False


class ValidationError(MeltyFiError):
    pass


class AuthorizationError(MeltyFiError):
    pass


class StateError(MeltyFiError):
    pass


class CapacityError(MeltyFiError):
    pass


class ExternalDependencyError(MeltyFiError):
    retryable = True


# Validation
class InvalidSupply(ValidationError):
    pass


class InvalidPrice(ValidationError):
    pass


class InvalidDuration(ValidationError):
    pass


class InvalidAmount(ValidationError):
    pass


class InsufficientPayment(ValidationError):
    pass


class ExcessPayment(ValidationError):
    pass


class IncorrectRepaymentAmount(ValidationError):
    pass


class InvalidParameter(ValidationError):
    pass


# Authorization
class NotCollateralOwner(AuthorizationError):
    pass


class NotLotteryOwner(AuthorizationError):
    pass


class NotWinner(AuthorizationError):
    pass


class Unauthorized(AuthorizationError):
    pass


# State
class LotteryNotFound(StateError):
    pass


class LotteryNotActive(StateError):
    pass


class LotteryNotFinalized(StateError):
    pass


class AlreadyClaimed(StateError):
    pass


class NoTicketsHeld(StateError):
    pass


class LotteryNotMeltable(StateError):
    pass


class UnknownRandomnessRequest(StateError):
    pass


class RandomnessAlreadyFulfilled(StateError):
    pass


class NotAwaitingRandomness(StateError):
    pass


class LedgerError(StateError):
    pass


class TokenAlreadyMinted(StateError):
    pass


# Capacity
class ExceedsMaxSupply(CapacityError):
    pass


class ExceedsHolderCap(CapacityError):
    pass


# External dependencies
class RandomnessUnavailable(ExternalDependencyError):
    pass


class RateUnavailable(ExternalDependencyError):
    pass
