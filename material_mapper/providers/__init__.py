"""Concrete provider adapters for Material Mapper."""
