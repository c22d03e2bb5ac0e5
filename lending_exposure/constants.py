"""Constants and configuration for lender exposure analysis."""

# Source categories, in the order the merger ingests them.
DIRECT_HOLDING = "direct_holding"
CUSTODIAL_STAKE = "custodial_stake"
DIRECT_SECONDARY_STAKE = "direct_secondary_stake"
SOURCE_CATEGORIES = (DIRECT_HOLDING, CUSTODIAL_STAKE, DIRECT_SECONDARY_STAKE)

# Input/output file names (relative to --data-dir).
DIRECT_HOLDERS_FILE = "direct_holders.json"
CUSTODIAL_STAKERS_FILE = "custodial_stakers.json"
SECONDARY_STAKERS_FILE = "secondary_stakers.json"
VAULT_STATE_FILE = "vault_state.json"
LEDGER_OUTPUT_FILE = "all_lenders.json"
BORROW_EVENTS_FILE = "borrow_events.json"
LEVERAGE_OUTPUT_FILE = "leverage_analysis.json"

SOURCE_FILES = {
    DIRECT_HOLDING: DIRECT_HOLDERS_FILE,
    CUSTODIAL_STAKE: CUSTODIAL_STAKERS_FILE,
    DIRECT_SECONDARY_STAKE: SECONDARY_STAKERS_FILE,
}

LEDGER_DESCRIPTION = (
    "Unified lender view merging direct vault holders, custodial stakers and direct secondary stakers. "
    "Addresses appearing in multiple categories have their positions summed."
)

# Display precision (fractional digits) at the serialization boundary.
SHARES_PLACES = 18
VALUE_PLACES = 6
PCT_PLACES = 2

# Enough significant digits to hold any uint256 (78 digits) exactly.
DECIMAL_PRECISION = 78

# Coverage above 100% + tolerance usually means a stale reference snapshot.
COVERAGE_TOLERANCE_PCT = "0.01"

DEFAULT_TOP_N = 10

# Function selectors observed on the lending controller.
# (label, is_leverage, is_borrow)
OBSERVED_SELECTORS: dict[str, tuple[str, bool, bool]] = {
    "0x23cfed03": ("create_loan (standard)", False, True),
    "0x4ba96d46": ("create_loan_extended (LEVERAGE)", True, True),
    "0x24977ef3": ("borrow_more_extended (LEVERAGE)", True, True),
    "0xdd171e7c": ("borrow_more (standard)", False, True),
    "0x24049e57": ("add_collateral (no borrow)", False, False),
}
UNKNOWN_SELECTOR_LABEL = "UNKNOWN"

# Extended (leverage) calls route through DEXes and emit many logs.
LEVERAGE_LOG_THRESHOLD = 10

CATEGORY_STANDARD = "standard"
CATEGORY_LEVERAGE = "leverage"

# Event signatures used for participant discovery.
TRANSFER_EVENT_SIGNATURE = "Transfer(address,address,uint256)"
STAKED_EVENT_SIGNATURE = "Staked(address,uint256)"
# Lending controller event: Borrow(address indexed user, uint256 collateral_increase, uint256 loan_increase)
BORROW_EVENT_SIGNATURE = "Borrow(address,uint256,uint256)"
# Collateral and debt amounts in Borrow events are 18-decimal fixed point.
BORROW_AMOUNT_DECIMALS = 18
ZERO_ADDRESS = "0x" + "0" * 40

# Minimal ABI for the ERC-4626 style lending vault.
VAULT_MIN_ABI: list[dict] = [
    {
        "type": "function",
        "name": "decimals",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "type": "function",
        "name": "totalSupply",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "totalAssets",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "pricePerShare",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

# Reward pools and gauges only need balanceOf.
BALANCE_OF_ABI: list[dict] = [
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

DEFAULT_LOG_CHUNK_SIZE = 50_000
DEFAULT_TIMEOUT = 30

# Cache configuration
CACHE_DIR_NAME = ".lending_exposure_cache"
CACHE_VERSION = "1"  # Increment to invalidate all caches
