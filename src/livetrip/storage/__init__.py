from .interfaces import (
    DistributionPoint,
    Identity,
    IdentityLookup,
    SubscribableDistributionPoint,
    TripStore,
)

__all__ = [
    "DistributionPoint",
    "Identity",
    "IdentityLookup",
    "SubscribableDistributionPoint",
    "TripStore",
]
