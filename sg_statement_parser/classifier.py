from __future__ import annotations

from typing import Iterable, Iterator, List, Optional

from .logging_setup import get_logger
from .models import ClassifiedLine, LineKind, ParseContext, RawLine
from .money import tokenize_amounts
from .profiles import InstitutionProfile

logger = get_logger(__name__)


def split_lines(text: str) -> List[RawLine]:
    return [
        RawLine(index=idx, text=raw.strip())
        for idx, raw in enumerate((text or "").splitlines())
        if raw.strip()
    ]


class LineClassifier:
    """Sorts statement lines into section/metadata/anchor/continuation kinds.

    Side effects are limited to the context it was given: the section gate and
    statement metadata (account, statement date, opening balance).
    """

    def __init__(self, profile: InstitutionProfile, context: ParseContext) -> None:
        self.profile = profile
        self.context = context

    def classify(self, line: RawLine, next_line: Optional[RawLine] = None) -> ClassifiedLine:
        text = line.text
        ctx = self.context
        self.profile.capture_metadata(text, ctx)

        if self.profile.is_section_start(text, next_line.text if next_line else None):
            if not ctx.inside_section:
                logger.debug("Found transaction section start at line %d: %r", line.index, text)
            ctx.inside_section = True
            return ClassifiedLine(line=line, kind=LineKind.SECTION_START)

        if not ctx.inside_section:
            return ClassifiedLine(line=line, kind=LineKind.METADATA)

        if self.profile.capture_section_metadata(text, ctx):
            return ClassifiedLine(line=line, kind=LineKind.METADATA)

        if self.profile.is_section_end(text):
            logger.debug("Found transaction section end at line %d: %r", line.index, text)
            ctx.inside_section = False
            return ClassifiedLine(line=line, kind=LineKind.SECTION_END)

        if self.profile.is_annotation(text):
            return ClassifiedLine(line=line, kind=LineKind.CONTINUATION, annotation=True)

        date = self.profile.match_date(text, ctx)
        if date is not None:
            return ClassifiedLine(
                line=line,
                kind=LineKind.DATE_ANCHOR,
                date=date,
                tokens=tuple(tokenize_amounts(date.remainder)),
            )

        return ClassifiedLine(
            line=line,
            kind=LineKind.CONTINUATION,
            tokens=tuple(tokenize_amounts(text)),
        )

    def classify_all(self, lines: Iterable[RawLine]) -> Iterator[ClassifiedLine]:
        # Lines are classified lazily, in order: later decisions depend on the
        # gate and metadata left behind by earlier ones.
        pending = list(lines)
        for idx, line in enumerate(pending):
            next_line = pending[idx + 1] if idx + 1 < len(pending) else None
            yield self.classify(line, next_line)
