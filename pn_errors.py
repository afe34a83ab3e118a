"""
Translation errors for mir2petri.
InternalError marks a translator defect, UnsupportedConstructError marks input
the translator refuses to model. Both abort the whole translation.
"""


class TranslationError(Exception):
    """Base class for errors raised while building the Petri net."""

    def __init__(self, message: str, function: str = "", basic_block: str = ""):
        self.message = message
        self.function = function
        self.basic_block = basic_block
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        if self.function:
            parts.append(f"function {self.function}")
        if self.basic_block:
            parts.append(f"basic block {self.basic_block}")
        if parts:
            return f"{self.message} (in {' / '.join(parts)})"
        return self.message

    def add_context(self, function: str, basic_block: str = "") -> None:
        """Attach the location where the error surfaced, keeping the innermost one."""
        if self.function:
            return
        self.function = function
        self.basic_block = basic_block
        self.args = (self._format(),)


class InternalError(TranslationError):
    """An invariant of the translator was violated. Never caused by the input."""


class UnsupportedConstructError(TranslationError):
    """The input uses a construct that is not modelled (function pointers, generators, ...)."""
