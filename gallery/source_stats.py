"""
SourceStats - Statistics for a single data source.
"""

from dataclasses import dataclass, asdict


@dataclass
class SourceStats:
    """
    Statistics for a single data source.

    Attributes:
        name: Source name
        kind: Source kind
        total_pictures: Number of pictures owned by the source
        with_dimensions: Pictures whose pixel size is known
        total_bytes: Sum of known picture sizes
    """
    name: str
    kind: str = 'local'
    total_pictures: int = 0
    with_dimensions: int = 0
    total_bytes: int = 0

    @property
    def dimension_coverage(self) -> float:
        """Percentage of pictures with known dimensions."""
        if self.total_pictures == 0:
            return 100.0
        return (self.with_dimensions / self.total_pictures) * 100

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'SourceStats':
        """Create from dictionary."""
        return cls(**data)
