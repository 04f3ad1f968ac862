# diagnostics.py
"""
Diagnostic sinks receive intermediate images from the pipeline.

The pipeline only ever talks to an injected sink; NullSink is the default and
makes rendering of the overlays skip entirely.
"""
import logging
import os
import re
from typing import Dict, List, Protocol, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class DiagnosticSink(Protocol):
    enabled: bool

    def emit(self, stage: str, image: np.ndarray) -> None:
        ...


class NullSink:
    """Discards everything."""

    enabled = False

    def emit(self, stage, image):
        pass


class CollectingSink:
    """Keeps emitted images in memory, in emission order."""

    enabled = True

    def __init__(self):
        self.images: List[Tuple[str, np.ndarray]] = []

    def emit(self, stage, image):
        self.images.append((stage, image.copy()))

    def get(self, stage):
        """Latest image emitted for a stage, or None."""
        for name, image in reversed(self.images):
            if name == stage:
                return image
        return None

    @property
    def stages(self):
        return [name for name, _ in self.images]

    def as_dict(self) -> Dict[str, np.ndarray]:
        return dict(self.images)


class DirectorySink:
    """Writes each emitted image as a numbered PNG in `directory`."""

    enabled = True

    def __init__(self, directory, prefix='sheet'):
        self.directory = directory
        self.prefix = re.sub(r'[^\w.-]+', '_', prefix)
        self._count = 0
        os.makedirs(directory, exist_ok=True)

    def emit(self, stage, image):
        self._count += 1
        path = os.path.join(self.directory, f"{self.prefix}_{self._count:02d}_{stage}.png")
        if not cv2.imwrite(path, image):
            logger.warning("Could not write diagnostic image %s", path)
