"""Shared fixtures."""
from typing import Dict

import pytest


class FixedRates:
    """Rate service stand-in returning a fixed rate per date."""

    def __init__(self, rates: Dict[str, float], default: float = 1300.0):
        self.rates = rates
        self.default = default
        self.calls = []

    def rate_for_date(self, day):
        self.calls.append(day)
        return self.rates.get(day, self.default)

    def info(self):
        return {"rate": self.default, "date": None, "source": "default", "last_updated": None}


@pytest.fixture
def fixed_rates():
    return FixedRates({"2025-07-20": 1300.0, "2025-07-21": 1400.0})
