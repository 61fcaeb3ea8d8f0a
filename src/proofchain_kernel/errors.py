"""
Error codes and types for proofchain-kernel.

Verification failures are data: they are collected into result objects so
tooling can enumerate every break. Exceptions are reserved for callers
handing in bad arguments or malformed documents.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProofChainError(Exception):
    """Base class for all proofchain-kernel exceptions."""


class InvalidInputError(ProofChainError, ValueError):
    """
    Raised synchronously at the call that introduced bad input.

    Examples: a malformed export document, a duplicated explicit chain id,
    an unknown proof type, or a payload that cannot be canonicalized.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class ErrorCode(str, Enum):
    """
    Verification error codes.
    Values are part of the export/report wire format.
    """
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INPUT_VALIDATION_FAILED = "INPUT_VALIDATION_FAILED"
    INPUT_HASH_MISMATCH = "INPUT_HASH_MISMATCH"
    OUTPUT_HASH_MISMATCH = "OUTPUT_HASH_MISMATCH"
    CHAIN_HASH_MISMATCH = "CHAIN_HASH_MISMATCH"
    ENTRY_HASH_MISMATCH = "ENTRY_HASH_MISMATCH"
    HASH_CHAIN_BROKEN = "HASH_CHAIN_BROKEN"
    LAST_DIGEST_MISMATCH = "LAST_DIGEST_MISMATCH"
    COUNT_MISMATCH = "COUNT_MISMATCH"
    DUPLICATE_RECORD_ID = "DUPLICATE_RECORD_ID"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    SIGNATURE_REQUIRED = "SIGNATURE_REQUIRED"


@dataclass
class VerificationError:
    """
    A single verification error with typed code and audit details.
    """
    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class VerificationResult:
    """
    Result of an offline verification operation.
    """
    valid: bool
    errors: list[VerificationError] = field(default_factory=list)

    @property
    def codes(self) -> list[str]:
        return [e.code.value for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class ChainVerificationResult:
    """
    Result of replaying a chain (event log or proof chain).

    ``broken_links`` holds the index of every element that failed any of
    the link, chain-digest or content-digest checks, in ascending order.
    ``first_error`` is the message of the first problem encountered.
    """
    valid: bool
    total_records: int
    valid_records: int
    invalid_records: int
    broken_links: list[int] = field(default_factory=list)
    first_error: str | None = None
    errors: list[VerificationError] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "valid": self.valid,
            "totalRecords": self.total_records,
            "validRecords": self.valid_records,
            "invalidRecords": self.invalid_records,
            "brokenLinks": list(self.broken_links),
            "errors": [e.to_dict() for e in self.errors],
        }
        if self.first_error is not None:
            result["firstError"] = self.first_error
        return result
