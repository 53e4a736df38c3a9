"""Configuration constants for chain-deployments library."""

# Network profile registry
# Each network names the environment variables its secrets are read from.
# Backends run in the listed order.
NETWORK_CONFIG = {
    "lisk": {
        "chain_id": 4202,
        "chain_name": "Lisk Sepolia",
        "rpc_env": "LISK_URL_RPC",
        "signer_env": "PRIVATE_KEY",
        "native_fee_symbol": "ETH",
        "block_explorer_url": "https://sepolia-blockscout.lisk.com",
        "verification_backends": [
            {
                "id": "blockscout",
                "kind": "explorer-api",
                "api_url": "https://sepolia-blockscout.lisk.com/api",
                "browser_url": "https://sepolia-blockscout.lisk.com",
                "api_key_env": "LISK_EXPLORER_KEY",
                "key_required": True,
            },
            {"id": "bundle", "kind": "manual-bundle"},
        ],
    },
    "hederaTestnet": {
        "chain_id": 296,
        "chain_name": "Hedera Testnet",
        "rpc_env": "HEDERA_TESTNET_RPC",
        "signer_env": "HEDERA_TESTNET_PRIVATE_KEY",
        "native_fee_symbol": "HBAR",
        "block_explorer_url": "https://hashscan.io/testnet",
        "verification_backends": [
            {
                "id": "hashscan-sourcify",
                "kind": "metadata-matching",
                "api_url": "https://server-verify.hashscan.io",
                "browser_url": "https://hashscan.io/testnet",
            },
            {"id": "bundle", "kind": "manual-bundle", "browser_url": "https://verify.hashscan.io"},
        ],
    },
    "hederaMainnet": {
        "chain_id": 295,
        "chain_name": "Hedera Mainnet",
        "rpc_env": "HEDERA_MAINNET_RPC",
        "signer_env": "HEDERA_MAINNET_PRIVATE_KEY",
        "native_fee_symbol": "HBAR",
        "block_explorer_url": "https://hashscan.io/mainnet",
        "verification_backends": [
            {
                "id": "hashscan-sourcify",
                "kind": "metadata-matching",
                "api_url": "https://server-verify.hashscan.io",
                "browser_url": "https://hashscan.io/mainnet",
            },
            {"id": "bundle", "kind": "manual-bundle", "browser_url": "https://verify.hashscan.io"},
        ],
    },
    "somniaTestnet": {
        "chain_id": 50312,
        "chain_name": "Somnia Shannon Testnet",
        "rpc_env": "SOMNIA_TESTNET_RPC",
        "signer_env": "SOMNIA_TESTNET_PRIVATE_KEY",
        "native_fee_symbol": "STT",
        "block_explorer_url": "https://shannon-explorer.somnia.network",
        "verification_backends": [
            {
                "id": "somnia-explorer",
                "kind": "explorer-api",
                "api_url": "https://shannon-explorer.somnia.network/api",
                "browser_url": "https://shannon-explorer.somnia.network",
                "api_key_env": "SOMNIA_EXPLORER_KEY",
                "key_required": False,
            },
            {"id": "bundle", "kind": "manual-bundle"},
        ],
    },
}

# API key values meaning "this backend does not need a key"
NO_KEY_SENTINELS = frozenset({"", "none", "empty"})

# HTTP timeout for verification backends, in seconds
REQUEST_TIMEOUT = 30

# Cooperative delay between submissions to the same backend, in seconds
VERIFICATION_DELAY = 2.0

# Explorer status polling
POLL_INTERVAL = 5.0
MAX_POLLS = 24

# RPC retry policy (bounded exponential backoff)
RPC_MAX_ATTEMPTS = 5
RPC_BACKOFF_MIN = 1.0
RPC_BACKOFF_MAX = 16.0

# Transaction confirmation
CONFIRMATION_TIMEOUT = 180
CONFIRMATIONS = 1

# Gas estimate headroom
GAS_BUFFER = 1.2
