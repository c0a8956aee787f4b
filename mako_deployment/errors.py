"""Errors raised while planning, deploying and initializing contracts."""

from typing import Any, Dict, List, Optional, Sequence


class DeploymentError(Exception):
    """Base class for every error that can terminate a deployment run."""

    def __init__(
        self,
        message: str,
        contract_name: Optional[str] = None,
        step_index: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.contract_name = contract_name
        self.step_index = step_index
        self.cause = cause

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        details = {"kind": self.kind, "message": self.message}
        if self.contract_name is not None:
            details["contract"] = self.contract_name
        if self.step_index is not None:
            details["step_index"] = self.step_index
        if self.cause is not None:
            details["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return details


#
# Planning
#


class UnknownContract(DeploymentError):
    """Raised when no compiled interface or declaration exists for a contract name."""


class UnknownStage(DeploymentError):
    """Raised when no declared contract is tagged with the requested stage."""


class CyclicDependency(DeploymentError):
    """Raised when constructor references form a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Cyclic constructor dependency: {' -> '.join(self.cycle)}")

    def to_dict(self) -> Dict[str, Any]:
        details = super().to_dict()
        details["cycle"] = self.cycle
        return details


class InvalidConstructorArguments(DeploymentError):
    """Raised when a constructor template does not fit the constructor ABI."""


class InvalidResumePoint(DeploymentError):
    """Raised when a run is asked to resume initialization at a step that does not exist."""


#
# Execution
#


class DependencyUnresolved(DeploymentError):
    """Raised when a referenced contract has no address at deployment time."""

    def __init__(self, contract_name: str, dependency: str):
        self.dependency = dependency
        super().__init__(
            f"{contract_name} references {dependency}, which has no deployed address",
            contract_name=contract_name,
        )


class DeploymentFailed(DeploymentError):
    """Raised when a contract creation transaction does not produce a contract."""


class ConfirmationTimeout(DeploymentError):
    """Raised when a transaction is not confirmed within the allotted time."""

    def __init__(
        self,
        message: str,
        txn_hash: Optional[str] = None,
        timeout: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.txn_hash = txn_hash
        self.timeout = timeout

    def to_dict(self) -> Dict[str, Any]:
        details = super().to_dict()
        details["txn_hash"] = self.txn_hash
        details["timeout"] = self.timeout
        return details


class InitializationFailed(DeploymentError):
    """
    Raised when a post-deployment initialization step fails.

    Never retried automatically: resubmitting a deposit or stake may fund the
    contract twice. ``receipts`` holds the steps confirmed before the failure.
    """

    def __init__(
        self,
        contract_name: str,
        step_index: int,
        cause: BaseException,
        receipts: Optional[List[Any]] = None,
    ):
        super().__init__(
            f"Initialization of {contract_name} failed at step {step_index}: {cause}",
            contract_name=contract_name,
            step_index=step_index,
            cause=cause,
        )
        self.receipts = list(receipts or [])


#
# Transport
#


class ChainClientError(DeploymentError):
    """Raised by chain clients when the network refuses or loses a transaction."""


class TransactionRejected(ChainClientError):
    """The transaction was refused before or during submission."""


class TransactionDropped(ChainClientError):
    """The transaction was submitted but disappeared from the network."""


class InsufficientBalance(ChainClientError):
    """The signer cannot cover the value of a transaction."""


class TransactionReverted(ChainClientError):
    """The transaction was mined with a failed status."""
