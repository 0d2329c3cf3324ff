"""
Default provider for remote registry.
"""

__all__ = ["Default"]


from .amazon_elastic_container_registry import AmazonElasticContainerRegistry


class Default(AmazonElasticContainerRegistry):
    pass
