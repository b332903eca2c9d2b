"""
Offline importers for zone aggregate inputs.

Import-time hashing uses the same plugin schemas as request-time hashing,
so imported rows are found by live requests.
"""

from .fixtures import seed_fixtures
from .rent_csv import RentImportStats, import_rent_csv

__all__ = ['seed_fixtures', 'import_rent_csv', 'RentImportStats']
