"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
DEFAULT_LIST_LIMIT = 200

# Decimal places kept for money and percentage deltas.
MONEY_PLACES = 2
PERCENT_PLACES = 2

ALLOWANCE_FIELD_PREFIX = "allowance."
ADJUSTMENT_FIELD_PREFIX = "adjustment."
