from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from eth_typing import ABI
from hexbytes import HexBytes

from mako_deployment.constants import HARDHAT_ARTIFACTS_DIR
from mako_deployment.utils import _load_json


class ContractInterface(NamedTuple):
    """The compiled form of a contract: what is needed to create and call it."""

    name: str
    abi: ABI
    creation_code: HexBytes

    @property
    def constructor_inputs(self) -> List[Dict[str, Any]]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return list(entry.get("inputs", []))
        return []

    def methods(self, method_name: str) -> List[Dict[str, Any]]:
        return [
            entry
            for entry in self.abi
            if entry.get("type") == "function" and entry.get("name") == method_name
        ]


class InterfaceProvider(ABC):
    """Source of compiled contract interfaces."""

    @abstractmethod
    def get_interface(self, name: str) -> Optional[ContractInterface]:
        """Returns the interface for a contract name, or None if it is not known."""
        raise NotImplementedError


class StaticInterfaceProvider(InterfaceProvider):
    def __init__(self, interfaces: Dict[str, ContractInterface]):
        self.interfaces = dict(interfaces)

    def get_interface(self, name: str) -> Optional[ContractInterface]:
        return self.interfaces.get(name)


class HardhatArtifactProvider(InterfaceProvider):
    """Reads hardhat compilation output, i.e. artifacts/contracts/<File>.sol/<Name>.json"""

    DEBUG_SUFFIX = ".dbg.json"

    def __init__(self, directory: Path = HARDHAT_ARTIFACTS_DIR):
        self.directory = Path(directory)
        self._cache: Dict[str, ContractInterface] = dict()

    def _find(self, name: str) -> Optional[Path]:
        matches = [
            path
            for path in sorted(self.directory.rglob(f"{name}.json"))
            if not path.name.endswith(self.DEBUG_SUFFIX)
        ]
        if not matches:
            return None
        if len(matches) != 1:
            raise ValueError(
                f"Artifact {name} is ambiguous - expected exactly one artifact file, "
                f"got {len(matches)} under {self.directory}"
            )
        return matches[0]

    def get_interface(self, name: str) -> Optional[ContractInterface]:
        if name in self._cache:
            return self._cache[name]

        filepath = self._find(name)
        if filepath is None:
            return None

        data = _load_json(filepath)
        bytecode = data.get("bytecode") or "0x"
        if HexBytes(bytecode) == HexBytes("0x"):
            # interfaces and abstract contracts have no creation code
            return None

        interface = ContractInterface(
            name=data.get("contractName", name),
            abi=data["abi"],
            creation_code=HexBytes(bytecode),
        )
        self._cache[name] = interface
        return interface


class ApeProjectProvider(InterfaceProvider):
    """Uses the contracts compiled by the current ape project (and its dependencies)."""

    def get_interface(self, name: str) -> Optional[ContractInterface]:
        try:
            contract_container = get_contract_container(name)
        except ValueError:
            return None

        contract_type = contract_container.contract_type
        if contract_type.deployment_bytecode is None:
            return None
        bytecode = contract_type.deployment_bytecode.bytecode
        if not bytecode:
            return None

        return ContractInterface(
            name=contract_type.name,
            abi=[entry.model_dump(mode="json", by_alias=True) for entry in contract_type.abi],
            creation_code=HexBytes(bytecode),
        )


def _get_dependency_contract_container(contract: str):
    from ape import project

    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            contract_container = getattr(dependency_api, contract)
            return contract_container
        except AttributeError:
            continue
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str):
    from ape import project

    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract)

    return contract_container
