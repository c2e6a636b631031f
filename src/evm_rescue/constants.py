"""Constants and mappings for the EVM rescue client."""

from enum import Enum

from .types import GasStrategy

POLYGON_CHAIN_ID = 137
NATIVE_SYMBOL = "MATIC"
NATIVE_DECIMALS = 18

# Multipliers applied to network fee fields per strategy
GAS_STRATEGY_MULTIPLIERS = {
    GasStrategy.SAFE: 1.0,
    GasStrategy.STANDARD: 1.2,
    GasStrategy.FAST: 1.5,
    GasStrategy.CUSTOM: 1.0,
}

MIN_CUSTOM_MULTIPLIER = 1.0
MAX_CUSTOM_MULTIPLIER = 10.0
AGGRESSIVE_MULTIPLIER_FLOOR = 5.0

CONTRACT_GAS_HEADROOM = 1.2

NATIVE_TRANSFER_GAS_LIMIT = 21_000
FALLBACK_NATIVE_GAS_LIMIT = 21_000
FALLBACK_TOKEN_GAS_LIMIT = 100_000

# Used when a node does not answer eth_maxPriorityFeePerGas
FALLBACK_PRIORITY_FEE_WEI = 1_500_000_000

# Probe amounts used when sizing a max transfer
NATIVE_PROBE_AMOUNT = "0.001"
TOKEN_PROBE_AMOUNT = "0.000001"

UNHEALTHY_ERROR_THRESHOLD = 3
FAILURE_LATENCY_PENALTY = 1.5

CONTRACT_FRESHNESS_HOURS = 24

ERC20_TRANSFER_SIGNATURE = "transfer(address,uint256)"
ERC20_BALANCE_OF_SIGNATURE = "balanceOf(address)"
ERC20_NAME_SIGNATURE = "name()"
ERC20_SYMBOL_SIGNATURE = "symbol()"
ERC20_DECIMALS_SIGNATURE = "decimals()"
OWNER_SIGNATURE = "owner()"
GET_OWNER_SIGNATURE = "getOwner()"

DEFAULT_ENDPOINTS = (
    ("https://polygon-rpc.com", "Polygon RPC", 3, 100),
    ("https://polygon-rpc.publicnode.com", "PublicNode", 2, 60),
    ("https://polygon.llamarpc.com", "LlamaRPC", 2, 80),
    ("https://polygon.drpc.org", "DRPC", 1, 50),
)


class Operation(str, Enum):
    """Named read/write operations dispatched through the endpoint pool."""

    GET_BALANCE = "get_balance"
    GET_FEE_DATA = "get_fee_data"
    GET_TOKEN_INFO = "get_token_info"
    GET_TOKEN_BALANCE = "get_token_balance"
    GET_CODE = "get_code"
    GET_BLOCK_NUMBER = "get_block_number"
    GET_LATEST_BLOCK = "get_latest_block"
    GET_CHAIN_ID = "get_chain_id"
    GET_NONCE = "get_nonce"
    ESTIMATE_GAS = "estimate_gas"
    CALL = "call"
    SEND_RAW_TRANSACTION = "send_raw_transaction"
    GET_TRANSACTION_RECEIPT = "get_transaction_receipt"
    GET_TRANSACTION = "get_transaction"


# Well-known Polygon tokens
# https://polygonscan.com/tokens
KNOWN_TOKENS = {
    "0x8f3cf7ad23cd3cadbd9735aff958023239c6a063": ("Dai Stablecoin", "DAI", 18),
    "0x2791bca1f2de4661ed88a30c99a7a9449aa84174": ("USD Coin", "USDC", 6),
    "0xc2132d05d31c914a87c6611c10748aeb04b58e8f": ("Tether USD", "USDT", 6),
    "0x7ceb23fd6bc0add59e62ac25578270cff1b9f619": ("Wrapped Ether", "WETH", 18),
}

SYMBOL_TO_TOKEN = {symbol: address for address, (_, symbol, _) in KNOWN_TOKENS.items()}
