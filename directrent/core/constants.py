"""
Shared domain constants for UK residential lettings.
"""

PROPERTY_TYPES = ("Studio", "Flat", "House", "Bungalow", "Maisonette")
FURNISHING_STATUSES = ("Furnished", "Unfurnished", "Part-Furnished")

# Monthly rent baselines (GBP) used by the rule-based estimator
BASE_PRICE_BY_TYPE = {
    "Studio": 900,
    "Flat": 1200,
    "House": 1800,
    "Bungalow": 1500,
    "Maisonette": 1300,
}
DEFAULT_BASE_PRICE = 1200
BEDROOM_PREMIUM = 300
BATHROOM_PREMIUM = 150
FURNISHING_PREMIUM = {
    "Furnished": 200,
    "Part-Furnished": 100,
    "Unfurnished": 0,
}

# Free-text spellings seen in listing feeds
PROPERTY_TYPE_ALIASES = {
    "apartment": "Flat",
    "flat": "Flat",
    "maisonette": "Maisonette",
    "house": "House",
    "bungalow": "Bungalow",
    "studio": "Studio",
}

EPC_SCORES = {"A": 7, "B": 6, "C": 5, "D": 4, "E": 3, "F": 2, "G": 1}
COUNCIL_TAX_SCORES = {"A": 1, "B": 2, "C": 3, "D": 4, "E": 5, "F": 6, "G": 7, "H": 8}

# Implicit feedback strength per interaction type
INTERACTION_RATINGS = {"view": 1, "save": 3, "inquiry": 4, "contact": 5}
MAX_INTERACTION_RATING = 5
