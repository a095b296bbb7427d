"""
Provider adapters.

    providers/
    ├── base.py        # ProviderAdapter, RestAdapter
    ├── greenhouse.py  # Harvest + Job Board (REST)
    ├── icims.py       # REST, header rate limits, id-cursor search
    ├── workday.py     # Recruiting web service (SOAP)
    └── registry.py    # build_adapter
"""

from atsbridge.providers.base import ProviderAdapter, RestAdapter
from atsbridge.providers.greenhouse import GreenhouseAdapter
from atsbridge.providers.icims import IcimsAdapter
from atsbridge.providers.registry import build_adapter
from atsbridge.providers.workday import WorkdayAdapter

__all__ = [
    "GreenhouseAdapter",
    "IcimsAdapter",
    "ProviderAdapter",
    "RestAdapter",
    "WorkdayAdapter",
    "build_adapter",
]
