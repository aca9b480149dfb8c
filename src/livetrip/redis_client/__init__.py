from .distribution import RedisDistributionPoint

__all__ = ["RedisDistributionPoint"]
