"""
OMR sheet scanner: reads 60-question bubble sheets (4 blocks x 15 rows x 4
choices) from scanned or photographed images.
"""
from .config import DEFAULT_CONFIG, OMRConfig, load_config
from .diagnostics import CollectingSink, DirectorySink, NullSink
from .errors import (
    BlockCountMismatch,
    BubbleCountMismatch,
    DeskewFailed,
    InsufficientFiducials,
    InvalidInput,
    OMRError,
    RowCountMismatch,
)
from .models import OMRResult, QuestionStatus
from .pipeline import process_sheet

__version__ = "1.0.0"

__all__ = [
    "DEFAULT_CONFIG",
    "OMRConfig",
    "load_config",
    "process_sheet",
    "OMRResult",
    "QuestionStatus",
    "NullSink",
    "CollectingSink",
    "DirectorySink",
    "OMRError",
    "InvalidInput",
    "DeskewFailed",
    "InsufficientFiducials",
    "BlockCountMismatch",
    "RowCountMismatch",
    "BubbleCountMismatch",
]
