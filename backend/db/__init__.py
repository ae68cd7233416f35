"""
Keg tracker persistence (async SQLAlchemy).

Models:
- User / UserRole (fastapi-users account + supply-chain role)
- Brewery / Restaurant
- Keg / KegScan
- Delivery / DeliveryItem
- VarianceReport / VarianceAlert / VarianceAction
"""

# Loading database first registers every model before any single model module is used
from . import database  # noqa: F401
