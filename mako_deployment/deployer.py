import time
import typing
from typing import Callable, NamedTuple

from eth_typing import ChecksumAddress
from eth_utils import keccak, to_hex

from mako_deployment.chain import ChainClient, CreationPayload
from mako_deployment.constants import DEFAULT_CONFIRMATION_TIMEOUT, DEFAULT_CONFIRMATIONS
from mako_deployment.errors import ChainClientError, ConfirmationTimeout, DeploymentFailed
from mako_deployment.params import ContractSpec, ResolutionContext
from mako_deployment.registry import (
    ArtifactRegistry,
    DeploymentRecord,
    DeploymentStore,
    normalize_constructor_args,
)


class DeployerContext(NamedTuple):
    """
    Everything a deployment needs to know about where and as whom it runs.
    Passed explicitly so that several networks can be targeted side by side.
    """

    network: str
    chain: ChainClient
    confirmations: int = DEFAULT_CONFIRMATIONS
    timeout: float = DEFAULT_CONFIRMATION_TIMEOUT

    @property
    def deployer_address(self) -> ChecksumAddress:
        return self.chain.deployer_address


class Deployer:
    """
    Creates contracts, or hands back the existing deployment record when the
    contract is already deployed on the context's network with the same
    constructor arguments and creation code.
    """

    def __init__(
        self,
        registry: ArtifactRegistry,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.clock = clock

    @property
    def store(self) -> DeploymentStore:
        return self.registry.store

    def deploy(
        self,
        spec: ContractSpec,
        resolved_args: typing.Mapping[str, ChecksumAddress],
        context: DeployerContext,
        force_redeploy: bool = False,
    ) -> DeploymentRecord:
        interface, existing_record = self.registry.resolve(spec.name, context.network)
        resolved_params = spec.resolve(
            ResolutionContext(addresses=resolved_args, deployer=context.deployer_address)
        )
        constructor_args = tuple(resolved_params.values())
        code_hash = to_hex(keccak(interface.creation_code))

        if existing_record is not None:
            changes = existing_record.changes(constructor_args, code_hash)
            if force_redeploy:
                print(f"(!) Redeploying {spec.name}; replacing record at {existing_record.address}")
            elif changes:
                print(
                    f"(!) {spec.name} at {existing_record.address} has different "
                    f"{' and '.join(changes)}; redeploying"
                )
            else:
                print(f"(i) Reusing {spec.name} at {existing_record.address}")
                return existing_record

        if resolved_params:
            pretty_args = "\n\t".join(f"{k}={v}" for k, v in resolved_params.items())
            print(f"\nDeploying {spec.name} with arguments:\n\t{pretty_args}")
        else:
            print(f"\nDeploying {spec.name} with no arguments")

        payload = CreationPayload(interface=interface, args=constructor_args)
        try:
            handle = context.chain.send_transaction(payload)
            receipt = context.chain.wait_for_confirmation(
                handle, confirmations=context.confirmations, timeout=context.timeout
            )
        except ConfirmationTimeout as e:
            e.contract_name = e.contract_name or spec.name
            raise
        except ChainClientError as e:
            raise DeploymentFailed(
                f"Deployment of {spec.name} failed: {e}", contract_name=spec.name, cause=e
            ) from e

        if receipt.failed:
            raise DeploymentFailed(
                f"Deployment of {spec.name} reverted in transaction {receipt.txn_hash}",
                contract_name=spec.name,
            )
        if not receipt.contract_address:
            raise DeploymentFailed(
                f"Transaction {receipt.txn_hash} did not create {spec.name}",
                contract_name=spec.name,
            )

        record = DeploymentRecord(
            contract_name=spec.name,
            address=receipt.contract_address,
            tx_hash=receipt.txn_hash,
            network=context.network,
            timestamp=int(self.clock()),
            block_number=receipt.block_number,
            deployer=context.deployer_address,
            constructor_args=normalize_constructor_args(constructor_args),
            code_hash=code_hash,
        )
        self.store.put(record)
        print(f"{spec.name} deployed to: {record.address}")
        return record
