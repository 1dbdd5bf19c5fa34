"""
Protocol-wide default parameters for MeltyFi lotteries.

These values are the public rules a fresh deployment starts with.
Most of them can be changed later by the governor (see params.py);
changing them MUST be publicly announced.
"""

# Native asset and ChocoChip both use 18 decimals
NATIVE_DECIMALS = 18
CHOCO_DECIMALS = 18
ONE_NATIVE = 10**NATIVE_DECIMALS

BASIS_POINTS = 10_000

# 5% of every purchase goes to the treasury
DEFAULT_FEE_BPS = 500
MAX_FEE_BPS = 1_000

# WonkaBar supply bounds per lottery
DEFAULT_MIN_SUPPLY = 5
DEFAULT_MAX_SUPPLY = 100
ABSOLUTE_MAX_SUPPLY = 10_000

# No single address may hold more than 25% of a lottery's supply
DEFAULT_HOLDER_CAP_PERCENT = 25

DEFAULT_MAX_DURATION_DAYS = 90
ABSOLUTE_MAX_DURATION_DAYS = 365
SECONDS_PER_DAY = 24 * 60 * 60

# 1 billion CHOC, never exceeded
CHOCO_CHIP_MAX_SUPPLY = 1_000_000_000 * 10**CHOCO_DECIMALS

# Rewards: 1000 CHOC per 1 native unit (fixed mode) or 10% of USD value (usd mode)
DEFAULT_CHIPS_PER_NATIVE = 1_000
DEFAULT_REWARD_BPS = 1_000
PRICE_DECIMALS = 8

# Address that holds locked collateral while a lottery runs
PROTOCOL_CUSTODY = "meltyfi:custody"

DEFAULT_GOVERNOR = "meltyfi:governor"
DEFAULT_TREASURY = "meltyfi:treasury"

DEFAULT_STATE_FILE = "meltyfi_state.json"

# drand mainnet (default chain)
DEFAULT_BEACON_URL = "https://api.drand.sh"
