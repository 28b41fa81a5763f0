from datetime import timezone
from sqlalchemy import Column, Integer, String, Float, DateTime, Text, func, BigInteger
from sqlalchemy.orm import validates
from sqlalchemy.types import TypeDecorator
from .database import Base


def name_key(name: str) -> str:
    """
    Lookup key for a country name. Folded in Python because SQLite's
    lower() only folds ASCII ("Åland Islands").
    """
    return name.strip().casefold()


class UTCDateTime(TypeDecorator):
    """
    Stores UTC and always hands back timezone-aware values, also on
    backends that drop the offset (SQLite).
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class Country(Base):
    __tablename__ = "countries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    name_key = Column(String(255), nullable=False, unique=True)
    capital = Column(String(255), nullable=True)
    region = Column(String(100), nullable=True, index=True)
    population = Column(BigInteger, nullable=False)
    currency_code = Column(String(10), nullable=True, index=True)
    exchange_rate = Column(Float, nullable=True)
    estimated_gdp = Column(Float, nullable=True, index=True)
    flag_url = Column(Text, nullable=True)
    last_refreshed_at = Column(UTCDateTime, nullable=True)

    @validates("name")
    def _sync_name_key(self, key, value):
        self.name_key = name_key(value)
        return value

    def __repr__(self):
        return f"<Country {self.name!r}>"

class Metadata(Base):
    """
    Process-wide key/value entries, one row per key.
    The refresh timestamp lives under the 'last_refreshed_at' key.
    """
    __tablename__ = "metadata"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(50), nullable=False, unique=True)
    value = Column(Text, nullable=True)
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())
