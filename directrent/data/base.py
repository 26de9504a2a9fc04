from typing import Protocol, List
from dataclasses import dataclass, asdict

# ----- Data shapes (thin & explicit) -----

@dataclass(frozen=True)
class MarketStatistics:
    average_price: float
    median_price: float
    min_price: float
    max_price: float
    std_price: float
    sample_count: int
    avg_bedrooms: float
    avg_bathrooms: float
    # exact | city | property_type | national | default
    source: str = "exact"

    def to_dict(self) -> dict:
        return asdict(self)

# Returned when nothing in the dataset matches; never None.
DEFAULT_MARKET_STATISTICS = MarketStatistics(
    average_price=1500.0,
    median_price=1400.0,
    min_price=500.0,
    max_price=5000.0,
    std_price=800.0,
    sample_count=0,
    avg_bedrooms=2.5,
    avg_bathrooms=1.5,
    source="default",
)

@dataclass(frozen=True)
class Interaction:
    user_id: str
    property_id: str
    interaction_type: str  # view | save | inquiry | contact

# ----- Protocols (interfaces) -----

class PropertyStore(Protocol):
    """Managed backend holding listings, interactions and ML side-effect rows."""
    async def count_landlord_listings(self, landlord_id: str) -> int: ...
    async def list_active_properties(self, limit: int) -> List[dict]: ...
    async def list_user_interactions(self, user_id: str) -> List[Interaction]: ...
    async def insert_fraud_report(self, row: dict) -> None: ...
    async def upsert_user_preferences(self, user_id: str, preferences: dict) -> None: ...
