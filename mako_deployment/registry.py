from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address, to_hex

from mako_deployment.artifacts import ContractInterface, InterfaceProvider
from mako_deployment.errors import UnknownContract
from mako_deployment.utils import _load_json, _write_json

ContractName = str
Network = str


def _normalize_arg(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return to_hex(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_arg(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_arg(item) for key, item in value.items()}
    return value


def normalize_constructor_args(args: Sequence) -> Tuple:
    """JSON-compatible form of resolved constructor arguments, as kept in a record."""
    return tuple(_normalize_arg(arg) for arg in args)


class DeploymentRecord(NamedTuple):
    """Proof that a contract was created on a network."""

    contract_name: ContractName
    address: ChecksumAddress
    tx_hash: str
    network: Network
    timestamp: int
    block_number: Optional[int] = None
    deployer: Optional[ChecksumAddress] = None
    constructor_args: Optional[Tuple] = None
    code_hash: Optional[str] = None

    @property
    def key(self) -> Tuple[Network, ContractName]:
        return self.network, self.contract_name

    def changes(self, constructor_args: Sequence, code_hash: str) -> List[str]:
        """
        What differs between this deployment and one made with the given inputs.
        Records written without those inputs are taken as unchanged.
        """
        changes = list()
        if self.constructor_args is not None:
            if self.constructor_args != normalize_constructor_args(constructor_args):
                changes.append("constructor arguments")
        if self.code_hash is not None and self.code_hash != code_hash:
            changes.append("creation code")
        return changes

    def to_dict(self) -> Dict:
        constructor_args = self.constructor_args
        return {
            "address": self.address,
            "tx_hash": self.tx_hash,
            "network": self.network,
            "timestamp": self.timestamp,
            "block_number": self.block_number,
            "deployer": self.deployer,
            "constructor_args": list(constructor_args) if constructor_args is not None else None,
            "code_hash": self.code_hash,
        }

    @classmethod
    def from_dict(cls, network: Network, contract_name: ContractName, data: Dict):
        deployer = data.get("deployer")
        block_number = data.get("block_number")
        constructor_args = data.get("constructor_args")
        return cls(
            contract_name=contract_name,
            address=to_checksum_address(data["address"]),
            tx_hash=data["tx_hash"],
            network=str(network),
            timestamp=int(data["timestamp"]),
            block_number=int(block_number) if block_number is not None else None,
            deployer=to_checksum_address(deployer) if deployer else None,
            constructor_args=(
                normalize_constructor_args(constructor_args)
                if constructor_args is not None
                else None
            ),
            code_hash=data.get("code_hash"),
        )


class DeploymentStore(ABC):
    """
    Persisted deployment records keyed by (network, contract name).
    A put replaces whatever was stored under the same key; records are never merged.
    """

    @abstractmethod
    def get(self, network: Network, contract_name: ContractName) -> Optional[DeploymentRecord]:
        raise NotImplementedError

    @abstractmethod
    def put(self, record: DeploymentRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def records(self, network: Optional[Network] = None) -> List[DeploymentRecord]:
        raise NotImplementedError


class InMemoryDeploymentStore(DeploymentStore):
    def __init__(self, records: Optional[List[DeploymentRecord]] = None):
        self._records: Dict[Tuple[Network, ContractName], DeploymentRecord] = dict()
        for record in records or list():
            self.put(record)

    def get(self, network: Network, contract_name: ContractName) -> Optional[DeploymentRecord]:
        return self._records.get((str(network), contract_name))

    def put(self, record: DeploymentRecord) -> None:
        self._records[record.key] = record

    def records(self, network: Optional[Network] = None) -> List[DeploymentRecord]:
        return [
            record
            for record in self._records.values()
            if network is None or record.network == str(network)
        ]


class JSONDeploymentStore(DeploymentStore):
    """
    Registry-style JSON file:

        {"<network>": {"<ContractName>": {"address": ..., "tx_hash": ..., ...}}}

    The file is re-read on every access so that concurrent runs against
    different networks see each other's writes.
    """

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)

    def _read(self) -> Dict[str, Dict[str, Dict]]:
        if not self.filepath.exists():
            return dict()
        return _load_json(self.filepath)

    def get(self, network: Network, contract_name: ContractName) -> Optional[DeploymentRecord]:
        entries = self._read().get(str(network), {})
        data = entries.get(contract_name)
        if data is None:
            return None
        return DeploymentRecord.from_dict(network, contract_name, data)

    def put(self, record: DeploymentRecord) -> None:
        data = defaultdict(dict, self._read())
        data[record.network][record.contract_name] = record.to_dict()

        # enforce a common order
        ordered = {
            network: dict(sorted(entries.items()))
            for network, entries in sorted(data.items())
        }
        _write_json(ordered, self.filepath)

    def records(self, network: Optional[Network] = None) -> List[DeploymentRecord]:
        records = list()
        for record_network, entries in self._read().items():
            if network is not None and record_network != str(network):
                continue
            for contract_name, data in entries.items():
                records.append(DeploymentRecord.from_dict(record_network, contract_name, data))
        return records


class ArtifactRegistry:
    """Resolves contract names to compiled interfaces and prior deployments."""

    def __init__(self, provider: InterfaceProvider, store: DeploymentStore):
        self.provider = provider
        self.store = store

    def interface(self, name: ContractName) -> ContractInterface:
        interface = self.provider.get_interface(name)
        if interface is None:
            raise UnknownContract(f"No compiled interface found for '{name}'", contract_name=name)
        return interface

    def resolve(
        self, name: ContractName, network: Network
    ) -> Tuple[ContractInterface, Optional[DeploymentRecord]]:
        interface = self.interface(name)
        existing_record = self.store.get(network, name)
        return interface, existing_record
