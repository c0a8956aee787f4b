import pytest
from eth_utils import to_checksum_address

from mako_deployment.constants import FULL_DEPLOYMENT, ONE_WEEK_IN_SECONDS
from mako_deployment.errors import DependencyUnresolved
from mako_deployment.params import (
    ZERO_ADDRESS,
    Constant,
    DeployerAccount,
    DeploymentConfig,
    InitAction,
    Literal,
    Reference,
    ResolutionContext,
    VariableContext,
    Wei,
    _process_raw_value,
    _variable_from_value,
)
from tests.conftest import DEPLOYER, ENTRY_POINT, NETWORK, ONE_ETHER, mako_params


@pytest.fixture
def variable_context():
    return VariableContext(
        contract_names=["MakoShard", "TokenPaymaster"],
        contract_name="TokenPaymaster",
        constants={"INITIAL_DEPOSIT": "0.1 ether", "TREASURY": ENTRY_POINT.lower()},
    )


def test_variable_kinds(variable_context):
    assert _variable_from_value("$deployer", variable_context) == DeployerAccount()
    assert _variable_from_value("$MakoShard", variable_context) == Reference("MakoShard")
    assert _variable_from_value("$ENTRY_POINT", variable_context) == Literal(ENTRY_POINT)
    assert _variable_from_value("$wei:2 gwei", variable_context) == Literal(2 * 10**9)
    assert _variable_from_value("$wei:INITIAL_DEPOSIT", variable_context) == Literal(
        ONE_ETHER // 10
    )

    # undeclared names are left for the planner to reject
    unknown = _variable_from_value("$Unknown", variable_context)
    assert isinstance(unknown, Reference)
    assert unknown.contract_name == "Unknown"
    assert unknown.dependent == "TokenPaymaster"


def test_constants_are_checksummed(variable_context):
    constant = Constant("TREASURY", variable_context)
    assert constant.value == ENTRY_POINT
    assert constant.constant_name == "TREASURY"


def test_builtin_constants(variable_context):
    assert Constant("ONE_WEEK", variable_context).value == ONE_WEEK_IN_SECONDS
    assert Constant("ZERO_ADDRESS", variable_context).value == ZERO_ADDRESS


def test_missing_constant(variable_context):
    with pytest.raises(DeploymentConfig.Invalid, match="MISSING"):
        Constant("MISSING", variable_context)


def test_invalid_wei_amount(variable_context):
    with pytest.raises(DeploymentConfig.Invalid):
        Wei("wei:lots", variable_context)
    with pytest.raises(DeploymentConfig.Invalid):
        Wei("wei:-1", variable_context)


def test_raw_values(variable_context):
    assert _process_raw_value(42, variable_context) == Literal(42)
    assert _process_raw_value(ENTRY_POINT.lower(), variable_context) == Literal(ENTRY_POINT)
    processed = _process_raw_value(["$MakoShard", 7], variable_context)
    assert processed == (Reference("MakoShard"), Literal(7))


def test_reference_resolution():
    reference = Reference("MakoShard", dependent="TokenPaymaster")
    address = to_checksum_address("0x" + "ab" * 20)

    assert reference.resolve(ResolutionContext(addresses={"MakoShard": address})) == address
    assert reference.resolve(ResolutionContext(addresses={}, eager=True)) == ZERO_ADDRESS

    with pytest.raises(DependencyUnresolved) as error:
        reference.resolve(ResolutionContext(addresses={}))
    assert error.value.contract_name == "TokenPaymaster"
    assert error.value.dependency == "MakoShard"


def test_config_from_yaml(params_filepath, tmp_path):
    config = DeploymentConfig.from_yaml(params_filepath)

    assert config.name == "mako-test"
    assert config.chain_id == int(NETWORK)
    assert config.store_filepath == tmp_path / "artifacts" / "mako-test.json"
    assert config.contract_names == [
        "MakoEnergy",
        "MakoShard",
        "SmartAccountFactory",
        "MakoAccountFactory",
        "TokenPaymaster",
        "SubscriptionPaymaster",
    ]
    assert config.stages == [
        "DEMO_NFT",
        "TokenPaymaster",
        "MakoShard",
        "SubscriptionPaymaster",
        "MakoEnergy",
        "SmartAccountFactory",
        FULL_DEPLOYMENT,
    ]
    assert "TokenPaymaster" in config
    assert "Nope" not in config


def test_contract_spec(config):
    spec = config.get("SubscriptionPaymaster")

    assert spec.dependencies == ("MakoShard",)
    assert list(spec.parameters) == ["_entryPoint", "_token", "_subscriptionCost"]
    assert spec.parameters["_subscriptionCost"] == Literal(3 * ONE_ETHER)
    assert spec.requires_init

    shard = to_checksum_address("0x" + "cd" * 20)
    resolved = spec.resolve(ResolutionContext(addresses={"MakoShard": shard}, deployer=DEPLOYER))
    assert list(resolved.values()) == [ENTRY_POINT, shard, 3 * ONE_ETHER]

    assert not config.get("MakoEnergy").requires_init
    assert config.get("MakoEnergy").dependencies == ()


def test_initialization_steps(config):
    deposit, stake = config.get("TokenPaymaster").steps

    assert deposit.index == 1
    assert deposit.action == InitAction.DEPOSIT
    assert deposit.amount == ONE_ETHER // 10
    assert deposit.args == ()

    assert stake.index == 2
    assert stake.action == InitAction.ADD_STAKE
    assert stake.action.method_name == "addStake"
    assert stake.amount == ONE_ETHER // 10
    assert stake.unstake_delay == ONE_WEEK_IN_SECONDS
    assert stake.args == (ONE_WEEK_IN_SECONDS,)
    assert "addStake(604800)" in stake.describe()


def test_tagged(config):
    names = [spec.name for spec in config.tagged("SubscriptionPaymaster")]
    assert names == ["MakoShard", "MakoAccountFactory", "SubscriptionPaymaster"]
    assert len(config.tagged(FULL_DEPLOYMENT)) == 6
    assert config.tagged("Nothing") == []


def test_chain_id_mismatch_on_live_network(tmp_path):
    params = mako_params(tmp_path)
    with pytest.raises(DeploymentConfig.Invalid, match="chain_id"):
        DeploymentConfig.from_dict(params, chain_id=1, live=True)

    # local networks are not checked
    DeploymentConfig.from_dict(params, chain_id=1, live=False)


@pytest.mark.parametrize(
    "mutate, match",
    [
        (lambda p: p.pop("contracts"), "contracts"),
        (lambda p: p["deployment"].pop("chain_id"), "chain_id"),
        (lambda p: p["artifacts"].pop("filename"), "filename"),
        (lambda p: p["contracts"].append("MakoEnergy"), "more than once"),
        (lambda p: p["contracts"][0]["MakoEnergy"].update(address="0x0"), "Unknown keys"),
        (lambda p: p["contracts"][0]["MakoEnergy"].update(tags=[FULL_DEPLOYMENT]), "implicit"),
    ],
)
def test_invalid_params(tmp_path, mutate, match):
    params = mako_params(tmp_path)
    mutate(params)
    with pytest.raises(DeploymentConfig.Invalid, match=match):
        DeploymentConfig.from_dict(params)


@pytest.mark.parametrize(
    "step, match",
    [
        ({"deposit": {}}, "amount"),
        ({"addStake": {"amount": 1}}, "unstake_delay"),
        ({"addStake": {"amount": 1, "unstake_delay": 0}}, "unstake_delay"),
        ({"withdraw": {"amount": 1}}, "Unknown initialization action"),
        ({"deposit": {"amount": "$MakoShard"}}, "literals or constants"),
        ({"deposit": {"amount": "some ether"}}, "Invalid amount"),
    ],
)
def test_invalid_initialization_steps(tmp_path, step, match):
    params = mako_params(tmp_path)
    params["contracts"][-1]["SubscriptionPaymaster"]["initialize"] = [step]
    with pytest.raises(DeploymentConfig.Invalid, match=match):
        DeploymentConfig.from_dict(params)
