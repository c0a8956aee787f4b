from pathlib import Path

import mako_deployment

#
# Filesystem
#

DEPLOYMENT_DIR = Path(mako_deployment.__file__).parent
CONSTRUCTOR_PARAMS_DIR = DEPLOYMENT_DIR / "constructor_params"
ARTIFACTS_DIR = DEPLOYMENT_DIR / "artifacts"
HARDHAT_ARTIFACTS_DIR = DEPLOYMENT_DIR.parent / "artifacts" / "contracts"

MANIFEST_SUFFIX = ".manifest.json"

#
# Networks
#

LOCAL_NETWORKS = ("local", "development", "hardhat", "localhost")

#
# Stages
#

FULL_DEPLOYMENT = "Full-Deployment"

#
# Transactions
#

DEFAULT_CONFIRMATIONS = 1
DEFAULT_CONFIRMATION_TIMEOUT = 120  # seconds

#
# ERC-4337
#

# EntryPoint v0.6 - same address on every supported chain
ENTRY_POINT_ADDRESS = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"

ONE_WEEK_IN_SECONDS = 60 * 60 * 24 * 7
