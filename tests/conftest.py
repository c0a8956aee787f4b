from collections import OrderedDict

import pytest
import yaml
from eth_utils import keccak, to_checksum_address, to_hex
from hexbytes import HexBytes

from mako_deployment.artifacts import ContractInterface, StaticInterfaceProvider
from mako_deployment.chain import (
    CallPayload,
    ChainClient,
    CreationPayload,
    Receipt,
    TransactionHandle,
)
from mako_deployment.deployer import DeployerContext
from mako_deployment.errors import ConfirmationTimeout, TransactionDropped, TransactionRejected
from mako_deployment.params import DeploymentConfig
from mako_deployment.registry import ArtifactRegistry, InMemoryDeploymentStore

# Common constants
NETWORK = "11155111"
DEPLOYER = "0x1000000000000000000000000000000000000001"
ENTRY_POINT = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
ONE_ETHER = 10**18
CREATION_CODE = HexBytes("0x6080604052")


# Utility functions
def constructor_abi(*inputs):
    return {
        "type": "constructor",
        "stateMutability": "nonpayable",
        "inputs": [{"name": name, "type": _type, "internalType": _type} for name, _type in inputs],
    }


def payable_method_abi(name, *inputs):
    return {
        "type": "function",
        "name": name,
        "stateMutability": "payable",
        "inputs": [{"name": n, "type": _type, "internalType": _type} for n, _type in inputs],
        "outputs": [],
    }


PAYMASTER_METHODS = (
    payable_method_abi("deposit"),
    payable_method_abi("addStake", ("unstakeDelaySec", "uint32")),
)

MAKO_ABIS = {
    "MakoEnergy": [constructor_abi()],
    "MakoShard": [constructor_abi()],
    "SmartAccountFactory": [constructor_abi(("_entryPoint", "address"))],
    "MakoAccountFactory": [constructor_abi(("_entryPoint", "address"))],
    "TokenPaymaster": [
        constructor_abi(("_entryPoint", "address"), ("_token", "address")),
        *PAYMASTER_METHODS,
    ],
    "SubscriptionPaymaster": [
        constructor_abi(
            ("_entryPoint", "address"), ("_token", "address"), ("_subscriptionCost", "uint256")
        ),
        *PAYMASTER_METHODS,
    ],
}


def make_interface(name, abi):
    return ContractInterface(name=name, abi=list(abi), creation_code=CREATION_CODE)


def mako_params(artifacts_dir, chain_id=int(NETWORK)):
    """Params mirroring constructor_params/sepolia.yml"""
    return {
        "deployment": {"name": "mako-test", "chain_id": chain_id},
        "artifacts": {"dir": str(artifacts_dir), "filename": "mako-test.json"},
        "constants": {
            "INITIAL_DEPOSIT": "0.1 ether",
            "INITIAL_STAKE": "0.1 ether",
            "SUBSCRIPTION_COST": "3 ether",
        },
        "contracts": [
            {"MakoEnergy": {"tags": ["DEMO_NFT"]}},
            {
                "MakoShard": {
                    "tags": ["TokenPaymaster", "MakoShard", "SubscriptionPaymaster", "MakoEnergy"]
                }
            },
            {
                "SmartAccountFactory": {
                    "constructor": {"_entryPoint": "$ENTRY_POINT"},
                    "tags": ["SmartAccountFactory"],
                }
            },
            {
                "MakoAccountFactory": {
                    "constructor": {"_entryPoint": "$ENTRY_POINT"},
                    "tags": ["SubscriptionPaymaster", "MakoEnergy"],
                }
            },
            {
                "TokenPaymaster": {
                    "constructor": OrderedDict(
                        [("_entryPoint", "$ENTRY_POINT"), ("_token", "$MakoShard")]
                    ),
                    "tags": ["TokenPaymaster", "MakoShard"],
                    "initialize": [
                        {"deposit": {"amount": "$INITIAL_DEPOSIT"}},
                        {"addStake": {"amount": "$INITIAL_STAKE", "unstake_delay": "$ONE_WEEK"}},
                    ],
                }
            },
            {
                "SubscriptionPaymaster": {
                    "constructor": OrderedDict(
                        [
                            ("_entryPoint", "$ENTRY_POINT"),
                            ("_token", "$MakoShard"),
                            ("_subscriptionCost", "$wei:SUBSCRIPTION_COST"),
                        ]
                    ),
                    "tags": ["SubscriptionPaymaster", "MakoEnergy"],
                    "initialize": [
                        {"deposit": {"amount": "$INITIAL_DEPOSIT"}},
                        {"addStake": {"amount": "$INITIAL_STAKE", "unstake_delay": "$ONE_WEEK"}},
                    ],
                }
            },
        ],
    }


class FakeChainClient(ChainClient):
    """
    Deterministic in-memory chain. Every submitted payload is recorded in
    ``sent``; failures are scripted per transaction number (1-based).
    """

    def __init__(self, address=DEPLOYER, balance=100 * ONE_ETHER):
        self._address = to_checksum_address(address)
        self.balance = balance
        self.sent = list()
        self.waits = list()
        self.reverts = set()
        self.rejects = set()
        self.drops = set()
        self.timeouts = set()
        self.block_number = 100

    @property
    def deployer_address(self):
        return self._address

    @property
    def creations(self):
        return [payload for payload in self.sent if isinstance(payload, CreationPayload)]

    @property
    def calls(self):
        return [payload for payload in self.sent if isinstance(payload, CallPayload)]

    def get_balance(self, address=None):
        return self.balance

    def send_transaction(self, payload):
        number = len(self.sent) + 1
        if number in self.rejects:
            self.rejects.discard(number)
            raise TransactionRejected(f"rejected {payload.describe()}")
        self.sent.append(payload)
        txn_hash = to_hex(keccak(text=f"txn-{number}"))
        return TransactionHandle(txn_hash=txn_hash, payload=payload)

    def wait_for_confirmation(self, handle, confirmations, timeout):
        self.waits.append((confirmations, timeout))
        number = len(self.sent)
        if number in self.timeouts:
            raise ConfirmationTimeout(
                f"{handle.txn_hash} not confirmed", txn_hash=handle.txn_hash, timeout=timeout
            )
        if number in self.drops:
            raise TransactionDropped(f"{handle.txn_hash} dropped")

        self.block_number += 1
        status = 0 if number in self.reverts else 1
        contract_address = None
        payload = handle.payload
        if isinstance(payload, CreationPayload) and status == 1:
            contract_address = to_checksum_address(keccak(text=f"contract-{number}")[-20:])
        elif isinstance(payload, CallPayload) and status == 1:
            self.balance -= payload.value
        return Receipt(
            txn_hash=handle.txn_hash,
            status=status,
            block_number=self.block_number,
            contract_address=contract_address,
        )


# Fixtures
@pytest.fixture
def chain():
    return FakeChainClient()


@pytest.fixture
def context(chain):
    return DeployerContext(network=NETWORK, chain=chain, confirmations=1, timeout=5)


@pytest.fixture
def interfaces():
    return {name: make_interface(name, abi) for name, abi in MAKO_ABIS.items()}


@pytest.fixture
def provider(interfaces):
    return StaticInterfaceProvider(interfaces)


@pytest.fixture
def store():
    return InMemoryDeploymentStore()


@pytest.fixture
def registry(provider, store):
    return ArtifactRegistry(provider=provider, store=store)


@pytest.fixture
def params(tmp_path):
    return mako_params(tmp_path / "artifacts")


@pytest.fixture
def params_filepath(tmp_path, params):
    filepath = tmp_path / "params.yml"
    with open(filepath, "w") as file:
        yaml.safe_dump(_plain(params), file, sort_keys=False)
    return filepath


@pytest.fixture
def config(params):
    return DeploymentConfig.from_dict(params)


def _plain(value):
    """yaml.safe_dump cannot represent OrderedDict"""
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value
