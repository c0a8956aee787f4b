from collections import OrderedDict
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, NamedTuple, Optional, Tuple

from mako_deployment.chain import Receipt
from mako_deployment.errors import DeploymentError
from mako_deployment.registry import DeploymentRecord
from mako_deployment.utils import _write_json


class ContractState(Enum):
    PENDING = "pending"
    DEPLOYED = "deployed"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    DEPLOYMENT_FAILED = "deployment_failed"
    INITIALIZATION_FAILED = "initialization_failed"


# allowed state changes of a single plan entry
TRANSITIONS = {
    ContractState.PENDING: (ContractState.DEPLOYED, ContractState.DEPLOYMENT_FAILED),
    ContractState.DEPLOYED: (ContractState.INITIALIZING,),
    ContractState.INITIALIZING: (
        ContractState.INITIALIZED,
        ContractState.INITIALIZATION_FAILED,
    ),
    ContractState.INITIALIZED: (),
    ContractState.DEPLOYMENT_FAILED: (),
    ContractState.INITIALIZATION_FAILED: (),
}


class ManifestEntry(NamedTuple):
    contract_name: str
    state: ContractState
    record: Optional[DeploymentRecord] = None
    reused: bool = False
    receipts: Tuple[Receipt, ...] = ()
    completed_steps: int = 0
    error: Optional[DeploymentError] = None

    def to_dict(self) -> Dict:
        data = {"state": self.state.value, "reused": self.reused}
        if self.record is not None:
            data.update(self.record.to_dict())
        if self.receipts or self.completed_steps:
            data["initialization"] = {
                "completed_steps": self.completed_steps,
                "tx_hashes": [receipt.txn_hash for receipt in self.receipts],
            }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


class DeploymentManifest:
    """The contracts touched by a single run. Read-only once built."""

    def __init__(self, network: str, stage: str, entries: "OrderedDict[str, ManifestEntry]"):
        self.network = network
        self.stage = stage
        self._entries = MappingProxyType(OrderedDict(entries))

    @property
    def entries(self):
        return self._entries

    @property
    def records(self) -> Dict[str, DeploymentRecord]:
        return OrderedDict(
            (name, entry.record) for name, entry in self._entries.items() if entry.record
        )

    @property
    def contract_names(self) -> List[str]:
        return list(self._entries)

    def __getitem__(self, contract_name: str) -> ManifestEntry:
        return self._entries[contract_name]

    def __contains__(self, contract_name: str) -> bool:
        return contract_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> Dict:
        return {
            "network": self.network,
            "stage": self.stage,
            "contracts": {name: entry.to_dict() for name, entry in self._entries.items()},
        }

    def write(self, filepath: Path) -> Path:
        return _write_json(self.to_dict(), Path(filepath))


class ManifestBuilder:
    """Tracks the state of each plan entry while a run is in progress."""

    class InvalidTransition(RuntimeError):
        pass

    def __init__(self, network: str, stage: str):
        self.network = network
        self.stage = stage
        self._entries: "OrderedDict[str, ManifestEntry]" = OrderedDict()

    def _transition(self, contract_name: str, state: ContractState, **changes) -> ManifestEntry:
        entry = self._entries.get(contract_name)
        if entry is None:
            entry = ManifestEntry(contract_name=contract_name, state=ContractState.PENDING)
        if state not in TRANSITIONS[entry.state]:
            raise self.InvalidTransition(
                f"{contract_name} cannot move from {entry.state.value} to {state.value}"
            )
        entry = entry._replace(state=state, **changes)
        self._entries[contract_name] = entry
        return entry

    def deployed(self, record: DeploymentRecord, reused: bool = False) -> ManifestEntry:
        return self._transition(
            record.contract_name, ContractState.DEPLOYED, record=record, reused=reused
        )

    def deployment_failed(self, contract_name: str, error: DeploymentError) -> ManifestEntry:
        return self._transition(contract_name, ContractState.DEPLOYMENT_FAILED, error=error)

    def initializing(self, contract_name: str, completed_steps: int = 0) -> ManifestEntry:
        return self._transition(
            contract_name, ContractState.INITIALIZING, completed_steps=completed_steps
        )

    def initialized(self, contract_name: str, receipts: List[Receipt]) -> ManifestEntry:
        entry = self._entries[contract_name]
        return self._transition(
            contract_name,
            ContractState.INITIALIZED,
            receipts=tuple(receipts),
            completed_steps=entry.completed_steps + len(receipts),
        )

    def initialization_failed(
        self, contract_name: str, error: DeploymentError, receipts: List[Receipt]
    ) -> ManifestEntry:
        entry = self._entries[contract_name]
        return self._transition(
            contract_name,
            ContractState.INITIALIZATION_FAILED,
            error=error,
            receipts=tuple(receipts),
            completed_steps=entry.completed_steps + len(receipts),
        )

    def build(self) -> DeploymentManifest:
        return DeploymentManifest(network=self.network, stage=self.stage, entries=self._entries)
