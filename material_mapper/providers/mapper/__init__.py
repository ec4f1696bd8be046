"""Analysis backend providers."""

from material_mapper.providers.mapper.http_mapper_provider import HttpMapperProvider

__all__ = ["HttpMapperProvider"]
