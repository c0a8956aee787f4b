from typing import List, Sequence

from mako_deployment.chain import CallPayload, Receipt
from mako_deployment.deployer import DeployerContext
from mako_deployment.errors import (
    DeploymentError,
    InitializationFailed,
    InsufficientBalance,
    TransactionReverted,
)
from mako_deployment.params import InitializationStep
from mako_deployment.registry import ArtifactRegistry, DeploymentRecord


class Initializer:
    """
    Funds freshly deployed contracts: deposit and stake calls, one at a time.

    Each step waits for its confirmation before the next one is submitted since
    later steps depend on the balance effects of earlier ones. A failed step is
    reported, never resubmitted.
    """

    def __init__(self, registry: ArtifactRegistry):
        self.registry = registry

    def _check_balance(self, step: InitializationStep, context: DeployerContext) -> None:
        balance = context.chain.get_balance()
        if balance < step.amount:
            raise InsufficientBalance(
                f"Deployer {context.deployer_address} holds {balance} wei, "
                f"{step.describe()} needs {step.amount} wei",
                contract_name=step.contract_name,
                step_index=step.index,
            )

    def _execute(
        self, payload: CallPayload, step: InitializationStep, context: DeployerContext
    ) -> Receipt:
        self._check_balance(step, context)
        print(f"\nTransacting {step.describe()}")
        handle = context.chain.send_transaction(payload)
        receipt = context.chain.wait_for_confirmation(
            handle, confirmations=context.confirmations, timeout=context.timeout
        )
        if receipt.failed:
            raise TransactionReverted(
                f"{step.describe()} reverted in transaction {receipt.txn_hash}",
                contract_name=step.contract_name,
                step_index=step.index,
            )
        return receipt

    def initialize(
        self,
        record: DeploymentRecord,
        steps: Sequence[InitializationStep],
        context: DeployerContext,
        start_at: int = 1,
    ) -> List[Receipt]:
        """
        Runs the steps of a deployed contract in order, beginning at the 1-based
        ``start_at`` step, and returns the receipts of the steps it executed.
        """
        if start_at < 1 or start_at > len(steps) + 1:
            raise ValueError(
                f"Cannot start {record.contract_name} initialization at step {start_at}; "
                f"it has {len(steps)} step(s)"
            )

        interface = self.registry.interface(record.contract_name)
        receipts = list()
        for step in steps:
            if step.index < start_at:
                print(f"(i) Skipping completed step {step.index}: {step.describe()}")
                continue

            payload = CallPayload(
                interface=interface,
                address=record.address,
                method=step.action.method_name,
                args=step.args,
                value=step.amount,
            )
            try:
                receipt = self._execute(payload, step, context)
            except DeploymentError as e:
                raise InitializationFailed(
                    contract_name=record.contract_name,
                    step_index=step.index,
                    cause=e,
                    receipts=receipts,
                ) from e
            print(f"(i) Step {step.index} confirmed in {receipt.txn_hash}")
            receipts.append(receipt)

        return receipts
