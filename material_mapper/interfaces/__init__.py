"""Abstract provider interfaces for Material Mapper."""

from material_mapper.interfaces.mapper_provider import IMaterialMapperProvider

__all__ = ["IMaterialMapperProvider"]
