# errors.py
"""
Error taxonomy for the OMR pipeline.

Page-level errors abort a sheet and are turned into a FailureReason on the
result; row-level ones are only used to format the warnings and notes that
get recorded while processing continues.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class FailureReason:
    kind: str
    stage: str
    message: str
    expected: Optional[str] = None
    actual: Optional[str] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'stage': self.stage,
            'message': self.message,
            'expected': self.expected,
            'actual': self.actual,
            'source': self.source,
        }


class OMRError(Exception):
    """Base error; every instance knows its stage, the expectation and the source."""

    stage = 'pipeline'

    def __init__(self, message, stage=None, expected=None, actual=None, source=None):
        self.message = message
        if stage is not None:
            self.stage = stage
        self.expected = expected
        self.actual = actual
        self.source = source
        super().__init__(self._render())

    def _render(self):
        text = f"[{self.stage}] {self.message}"
        if self.expected is not None or self.actual is not None:
            text += f" (expected {self.expected}, got {self.actual})"
        if self.source is not None:
            text += f" [source: {self.source}]"
        return text

    def with_source(self, source):
        """Returns the same error bound to a source identifier."""
        if self.source is None:
            self.source = source
            self.args = (self._render(),)
        return self

    def to_failure(self) -> FailureReason:
        return FailureReason(
            kind=type(self).__name__,
            stage=self.stage,
            message=self.message,
            expected=None if self.expected is None else str(self.expected),
            actual=None if self.actual is None else str(self.actual),
            source=self.source,
        )


class InvalidInput(OMRError):
    stage = 'input'


class DeskewFailed(OMRError):
    stage = 'deskew'


class InsufficientFiducials(OMRError):
    stage = 'region'


class BlockCountMismatch(OMRError):
    stage = 'blocks'


class RowCountMismatch(OMRError):
    stage = 'rows'


class BubbleCountMismatch(OMRError):
    stage = 'bubbles'
