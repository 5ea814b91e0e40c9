"""
Events emitted by a segment engine to its session's handler.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Union


class ErrorCategory(str, Enum):
    NETWORK = "network"
    MEDIA = "media"
    OTHER = "other"


class ErrorDetails:
    MANIFEST_LOAD_ERROR = "manifestLoadError"
    MANIFEST_PARSING_ERROR = "manifestParsingError"
    FRAG_LOAD_ERROR = "fragLoadError"
    BUFFER_APPEND_ERROR = "bufferAppendError"


@dataclass(frozen=True)
class ManifestParsed:
    total_segments: int
    max_duration: float
    total_duration: float = 0.0


@dataclass(frozen=True)
class FragmentLoaded:
    sequence_number: int
    duration: float = 0.0


@dataclass(frozen=True)
class FatalError:
    category: ErrorCategory
    details: str = ""


@dataclass(frozen=True)
class NonFatalBufferFull:
    pass


EngineEvent = Union[ManifestParsed, FragmentLoaded, FatalError, NonFatalBufferFull]
EventHandler = Callable[[EngineEvent], None]
