"""Material Mapper: stream a building-strategy analysis and map its flows."""

__version__ = "0.1.0"
