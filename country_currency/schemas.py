from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any
from datetime import datetime

# Accepted values for the ?sort= query parameter
class SortOption(str, Enum):
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"
    POPULATION_ASC = "population_asc"
    POPULATION_DESC = "population_desc"
    GDP_ASC = "gdp_asc"
    GDP_DESC = "gdp_desc"

# Base Pydantic model for a Country
class CountryBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int = Field(ge=0)
    currency_code: Optional[str] = None
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = None
    flag_url: Optional[str] = None

# Model for a derived record ready to be upserted
class CountryCreate(CountryBase):
    last_refreshed_at: datetime

# Model for responses (includes DB-generated fields)
class Country(CountryBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    last_refreshed_at: Optional[datetime] = None

# Outcome of one refresh run
class RefreshResult(BaseModel):
    total_countries: int
    last_refreshed_at: datetime

# Model for the /countries/refresh endpoint
class RefreshResponse(RefreshResult):
    message: str = "Countries data refreshed successfully"

# Model for the /status endpoint
class StatusResponse(BaseModel):
    total_countries: int
    last_refreshed_at: Optional[datetime] = None

class MessageResponse(BaseModel):
    message: str

# Standard error response models
class ErrorDetail(BaseModel):
    error: str
    details: Optional[Dict[str, Any] | str] = None
