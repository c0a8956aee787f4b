from ape import networks

from mako_deployment.constants import LOCAL_NETWORKS


def is_local_network() -> bool:
    """Returns True if the connected network is a local development chain."""
    return networks.provider.network.name in LOCAL_NETWORKS


def network_identifier() -> str:
    """Deployment records are keyed by the chain id of the connected network."""
    return str(networks.provider.network.chain_id)


def describe_network() -> str:
    network = networks.provider.network
    return f"{network.ecosystem.name}:{network.name} (chain id {network.chain_id})"
