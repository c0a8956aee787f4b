import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from web3 import Web3

from mako_deployment.constants import ARTIFACTS_DIR

STANDARD_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def _write_json(data: Any, filepath: Path) -> Path:
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w") as file:
        json.dump(data, file, **STANDARD_JSON_FORMAT)
    return filepath


def get_artifact_filepath(config: Dict) -> Path:
    """Returns the filepath of the deployment store file."""
    artifact_config = config.get("artifacts", {})
    artifact_dir = Path(artifact_config.get("dir", ARTIFACTS_DIR))
    filename = artifact_config.get("filename")
    if not filename:
        raise ValueError("artifact filename is not set in params file.")
    return artifact_dir / filename


def validate_config(config: Dict, chain_id: Optional[int] = None, live: bool = False) -> Path:
    """
    Checks the top level structure of a params file and, for live networks,
    that it targets the connected chain. Returns the deployment store filepath.
    """
    print("Validating parameters YAML...")

    deployment = config.get("deployment")
    if not deployment:
        raise ValueError("deployment is not set in params file.")

    config_chain_id = deployment.get("chain_id")
    if not config_chain_id:
        raise ValueError("chain_id is not set in params file.")

    contracts = config.get("contracts")
    if not contracts:
        raise ValueError("Params file missing 'contracts' field.")

    config_chain_id = int(config_chain_id)
    if live and chain_id is not None and config_chain_id != chain_id:
        raise ValueError(
            f"chain_id in params file ({config_chain_id}) does not match "
            f"chain_id of current network ({chain_id})."
        )

    return get_artifact_filepath(config=config)


def to_wei(value: Any) -> int:
    """
    Converts an amount to wei. Integers are taken as wei already;
    strings may carry a unit, e.g. "0.1 ether" or "3 gwei".
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount {value!r}")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        parts = value.split()
        if len(parts) == 1:
            number, unit = parts[0], "wei"
        elif len(parts) == 2:
            number, unit = parts
        else:
            raise ValueError(f"Invalid amount {value!r}")
        try:
            amount = Web3.to_wei(Decimal(number), unit.lower())
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"Invalid amount {value!r}") from e
    else:
        raise ValueError(f"Invalid amount {value!r}")

    if amount < 0:
        raise ValueError(f"Amount cannot be negative: {value!r}")
    return int(amount)
