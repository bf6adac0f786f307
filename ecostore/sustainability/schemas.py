from pydantic import Field
from typing import Optional
from datetime import datetime

from ecostore.shared.utils import CamelModel

class DashboardResponse(CamelModel):
    green_points: int
    total_co2_saved: float = Field(alias="totalCO2Saved")
    total_plastic_saved: float
    eco_products_purchased: int
    global_rank: int
    total_users: int

class LeaderboardEntry(CamelModel):
    name: str
    green_points: int
    total_co2_saved: float = Field(alias="totalCO2Saved")
    total_plastic_saved: float

class CartImpactResponse(CamelModel):
    total_co2: float = Field(alias="totalCO2")
    total_plastic: float
    eco_friendly_items: int
    total_items: int
    potential_green_points: int
    eco_percentage: float

class PreferencesUpdate(CamelModel):
    packaging_preference: Optional[str] = Field(None, pattern="^(standard|minimal|plastic_free)$")
    notify_green_deals: Optional[bool] = None
    show_carbon_footprint: Optional[bool] = None

class PreferencesResponse(CamelModel):
    user_id: int
    packaging_preference: str
    notify_green_deals: bool
    show_carbon_footprint: bool
    updated_at: Optional[datetime] = None
