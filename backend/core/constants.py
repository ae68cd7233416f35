"""
Keg tracker reference data.

Keg sizes, beer styles and the fixed thresholds used across the API.
"""

from typing import Dict, List

# Keg size reference data
KEG_SIZES: Dict[str, Dict] = {
    "1/6BBL": {"name": "Sixth Barrel", "volume_oz": 55.2, "expected_pints": 41, "description": "Most common for craft beer"},
    "1/4BBL": {"name": "Quarter Barrel", "volume_oz": 99.2, "expected_pints": 74, "description": "Common for distribution"},
    "1/2BBL": {"name": "Half Barrel", "volume_oz": 198.4, "expected_pints": 124, "description": "Standard US keg"},
    "Pony": {"name": "Pony Keg", "volume_oz": 74.4, "expected_pints": 53, "description": "Small venues"},
    "Cornelius": {"name": "Corny Keg", "volume_oz": 50, "expected_pints": 37, "description": "Homebrew/small batch"},
}

BEER_STYLES: List[str] = [
    "IPA",
    "Pale Ale",
    "Lager",
    "Pilsner",
    "Stout",
    "Porter",
    "Wheat Beer",
    "Sour",
    "Amber Ale",
    "Brown Ale",
    "Belgian Ale",
    "Other",
]

USER_ROLES = ("BREWER", "DRIVER", "RESTAURANT_MANAGER")
DELIVERY_STATUSES = ("PENDING", "ACCEPTED", "REJECTED", "CANCELLED")
VARIANCE_STATUSES = ("NORMAL", "WARNING", "CRITICAL")
ALERT_STATUSES = ("new", "investigating", "resolved", "false_positive")
ALERT_SEVERITIES = ("critical", "high", "medium", "low")

# Absolute pint thresholds for keg variance status
VARIANCE_THRESHOLDS = {
    "NORMAL": 3,
    "WARNING": 8,
}

# Percentage bands for alert severity, highest first
SEVERITY_BANDS = [
    (50.0, "critical"),
    (25.0, "high"),
    (10.0, "medium"),
]

# Minimum |variance %| that raises an alert, per sensitivity
REPORTING_THRESHOLDS = {
    "low": 25.0,
    "medium": 15.0,
    "high": 10.0,
}

KEG_DEPOSIT = 30.00

TAP_POSITIONS = range(1, 21)

ABV_MIN = 0
ABV_MAX = 20
IBU_MIN = 1
IBU_MAX = 120

# Scans at these locations count as returns for the quality metric
RETURN_LOCATION_TOKENS = ("return", "warehouse")

BLOCK_EXPLORER_TX_URL = "https://basescan.org/tx/{tx_hash}"

# Expected value per variance category
VARIANCE_BASELINES: Dict[str, float] = {
    "inventory": 70.0,    # % of kegs active
    "lifecycle": 30.0,    # days from creation to retirement
    "delivery": 0.5,      # hours between scheduled and accepted
    "volume": 4.0,        # kegs per delivery
    "product_mix": 40.0,  # % share of the most common style
    "quality": 15.0,      # % of scans at return/warehouse locations
}
