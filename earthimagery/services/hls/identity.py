"""
Dataset identity - the 4-part key naming one logical video stream.
"""
from dataclasses import dataclass

KEY_DELIMITER = "."


@dataclass(frozen=True)
class DatasetIdentity:
    """A (source, sector, product, resolution) tuple, e.g. GOES18/hi/GEOCOLOR/600x600."""
    source: str
    sector: str
    product: str
    resolution: str

    @property
    def key(self) -> str:
        """Storage key, e.g. ``GOES18.hi.GEOCOLOR.600x600``."""
        return KEY_DELIMITER.join((self.source, self.sector, self.product, self.resolution))

    @classmethod
    def from_key(cls, key: str) -> "DatasetIdentity":
        """Parse a storage key back into an identity.

        Raises:
            ValueError: if the key does not have exactly four non-empty parts
        """
        parts = key.split(KEY_DELIMITER)
        if len(parts) != 4 or not all(parts):
            raise ValueError(f"Invalid dataset key: {key!r}")
        return cls(*parts)

    @staticmethod
    def is_key(name: str) -> bool:
        """Check whether a directory name looks like a dataset key."""
        parts = name.split(KEY_DELIMITER)
        return len(parts) == 4 and all(parts)

    def __str__(self) -> str:
        return self.key
