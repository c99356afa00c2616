"""Error taxonomy for the vesting program and its ledger collaborators."""

from __future__ import annotations


class VestingError(Exception):
    """Base class for every failure that aborts an instruction."""

    code = 0
    message = "Vesting error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class InvalidInstruction(VestingError):
    code = 1
    message = "Invalid instruction"


class InvalidArgument(VestingError):
    code = 2
    message = "Invalid argument"


class InvalidSeeds(InvalidArgument):
    code = 3
    message = "Provided seeds do not result in a valid address"


class NoEligibleRelease(InvalidArgument):
    """Nothing has vested yet. Safe to retry later."""

    code = 4
    message = "No vesting periods have elapsed"


class IllegalOwner(VestingError):
    code = 5
    message = "Account is not owned by the expected program"


class InvalidVaultOwner(VestingError):
    code = 6
    message = "Invalid vault owner"


class InvalidVaultAmount(VestingError):
    code = 7
    message = "Vault must be empty with no delegate or close authority"


class InsufficientFunds(VestingError):
    code = 8
    message = "Insufficient funds"


class Overflow(VestingError):
    code = 9
    message = "Amount overflows u64"


class DecodeError(VestingError):
    code = 10
    message = "Account data could not be decoded"


class Truncated(DecodeError):
    code = 11
    message = "Account data is shorter than its layout"


class InvalidEnumerant(DecodeError):
    code = 12
    message = "Account data holds an out-of-range enumerant"


class MissingRequiredSignature(VestingError):
    code = 13
    message = "Missing required signature"


class IncorrectProgramId(VestingError):
    code = 14
    message = "Incorrect program id"


class NotEnoughAccountKeys(VestingError):
    code = 15
    message = "Not enough account keys"


class AccountAlreadyInitialized(VestingError):
    code = 16
    message = "Vesting contract with this seed already exists"


class AccountAlreadyInUse(VestingError):
    code = 17
    message = "Account is already in use"


class UninitializedAccount(VestingError):
    code = 18
    message = "Vesting account is not initialized"


class Unauthorized(VestingError):
    code = 19
    message = "You do not have sufficient permissions to perform this action"


class InvalidSchedule(VestingError):
    code = 20
    message = "Invalid vesting schedule given"


class InvalidPeriod(VestingError):
    code = 21
    message = "The number of vesting periods must be greater than zero"


class InvalidDepositAmount(VestingError):
    code = 22
    message = "The vesting deposit amount must be greater than zero"
