from abc import ABC, abstractmethod
from typing import Any, NamedTuple, Optional, Tuple, Union

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address, to_hex

from mako_deployment.artifacts import ContractInterface
from mako_deployment.errors import ConfirmationTimeout, TransactionDropped, TransactionRejected


class CreationPayload(NamedTuple):
    interface: ContractInterface
    args: Tuple[Any, ...] = ()
    value: int = 0

    def describe(self) -> str:
        return f"create {self.interface.name}"


class CallPayload(NamedTuple):
    interface: ContractInterface
    address: ChecksumAddress
    method: str
    args: Tuple[Any, ...] = ()
    value: int = 0

    def describe(self) -> str:
        return f"{self.interface.name}[{self.address[:10]}].{self.method}"


TransactionPayload = Union[CreationPayload, CallPayload]


class TransactionHandle(NamedTuple):
    txn_hash: str
    payload: TransactionPayload


class Receipt(NamedTuple):
    txn_hash: str
    status: int
    block_number: Optional[int] = None
    contract_address: Optional[ChecksumAddress] = None

    @property
    def failed(self) -> bool:
        return self.status != 1


class ChainClient(ABC):
    """
    Transport to an EVM network, bound to a single signer.

    Implementations raise ChainClientError subclasses for refused or lost
    transactions and ConfirmationTimeout when a wait runs out of time.
    """

    @property
    @abstractmethod
    def deployer_address(self) -> ChecksumAddress:
        raise NotImplementedError

    @abstractmethod
    def get_balance(self, address: Optional[ChecksumAddress] = None) -> int:
        raise NotImplementedError

    @abstractmethod
    def send_transaction(self, payload: TransactionPayload) -> TransactionHandle:
        raise NotImplementedError

    @abstractmethod
    def wait_for_confirmation(
        self, handle: TransactionHandle, confirmations: int, timeout: float
    ) -> Receipt:
        raise NotImplementedError


def _select_method_abi(interface: ContractInterface, method: str, args: Tuple[Any, ...]):
    method_abis = [abi for abi in interface.methods(method) if len(abi["inputs"]) == len(args)]
    if not method_abis:
        raise TransactionRejected(
            f"{interface.name} has no method '{method}' taking {len(args)} argument(s)",
            contract_name=interface.name,
        )
    return method_abis[0]


class ApeChainClient(ChainClient):
    """ChainClient backed by an ape account and the connected ape provider."""

    def __init__(self, account, provider=None):
        self.account = account
        self._provider = provider

    @property
    def provider(self):
        if self._provider is None:
            from ape import networks

            return networks.provider
        return self._provider

    @property
    def deployer_address(self) -> ChecksumAddress:
        return to_checksum_address(self.account.address)

    def get_balance(self, address: Optional[ChecksumAddress] = None) -> int:
        return int(self.provider.get_balance(address or self.account.address))

    def _encode(self, payload: TransactionPayload):
        from ethpm_types.abi import ConstructorABI, MethodABI

        ecosystem = self.provider.network.ecosystem
        kwargs = {"sender": self.account.address, "value": payload.value}
        if isinstance(payload, CreationPayload):
            constructor = payload.interface.constructor_inputs
            abi = ConstructorABI.model_validate({"type": "constructor", "inputs": constructor})
            return ecosystem.encode_deployment(
                payload.interface.creation_code, abi, *payload.args, **kwargs
            )

        method_abi = _select_method_abi(payload.interface, payload.method, payload.args)
        abi = MethodABI.model_validate(method_abi)
        return ecosystem.encode_transaction(payload.address, abi, *payload.args, **kwargs)

    def _reject(self, payload: TransactionPayload, reason: Any, cause=None) -> TransactionRejected:
        return TransactionRejected(
            f"Transaction to {payload.describe()} was rejected: {reason}",
            contract_name=payload.interface.name,
            cause=cause,
        )

    def send_transaction(self, payload: TransactionPayload) -> TransactionHandle:
        """
        Signs and broadcasts without waiting for the transaction to be mined;
        account.call would block on ape's own acceptance timeout instead.
        """
        from ape.exceptions import ApeException
        from web3.exceptions import Web3Exception

        txn = self._encode(payload)
        try:
            txn = self.account.prepare_transaction(txn)
            signed_txn = self.account.sign_transaction(txn)
            if signed_txn is None:
                raise self._reject(payload, "the signer declined to sign")
            txn_hash = self.provider.web3.eth.send_raw_transaction(
                signed_txn.serialize_transaction()
            )
        except (ApeException, Web3Exception, ValueError) as e:
            raise self._reject(payload, e, cause=e) from e

        if isinstance(txn_hash, bytes):
            txn_hash = to_hex(txn_hash)
        return TransactionHandle(txn_hash=txn_hash, payload=payload)

    def wait_for_confirmation(
        self, handle: TransactionHandle, confirmations: int, timeout: float
    ) -> Receipt:
        from ape.exceptions import ApeException, TransactionNotFoundError

        try:
            receipt = self.provider.get_receipt(
                handle.txn_hash, required_confirmations=confirmations, timeout=timeout
            )
        except TransactionNotFoundError as e:
            raise ConfirmationTimeout(
                f"{handle.payload.describe()} ({handle.txn_hash}) was not confirmed "
                f"within {timeout} seconds",
                txn_hash=handle.txn_hash,
                timeout=timeout,
                contract_name=handle.payload.interface.name,
                cause=e,
            ) from e
        except ApeException as e:
            raise TransactionDropped(
                f"Lost track of {handle.payload.describe()} ({handle.txn_hash}): {e}",
                contract_name=handle.payload.interface.name,
                cause=e,
            ) from e

        contract_address = receipt.contract_address
        return Receipt(
            txn_hash=handle.txn_hash,
            status=int(receipt.status),
            block_number=receipt.block_number,
            contract_address=to_checksum_address(contract_address) if contract_address else None,
        )
