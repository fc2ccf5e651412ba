"""Field extraction from the client's JSON-ish log text.

The client logs are not a stable contract: payloads show up both as plain
JSON and as JSON embedded in a string (with backslash-escaped quotes), so
fields are pulled out with tolerant regexes instead of a JSON parser. All
pattern knowledge lives here; the identity and penalty code only talk to
FieldExtractor.
"""

import re
from dataclasses import dataclass
from typing import Iterator, Optional

# Pattern vocabulary, must match the producer's output exactly
ACCOUNT_ID_FIELD = "accountId"
GAME_NAME_FIELD = "gameName"
TAG_LINE_FIELD = "tagLine"
LOW_PRIORITY_MARKER = "LEAVER_BUSTED"
LOCKOUT_MARKER = "LEAVER_BUSTER_QUEUE_LOCKOUT"
DURATION_FIELD = "remainingMillis"

# \\?" matches a raw or backslash-escaped quote
_Q = r'\\?"'

ACCOUNT_ID_PATTERN = re.compile(
    rf'{_Q}{ACCOUNT_ID_FIELD}{_Q}\s*:\s*(?:{_Q})?(\d+)',
    re.IGNORECASE,
)
GAME_NAME_PATTERN = re.compile(
    rf'{_Q}{GAME_NAME_FIELD}{_Q}\s*:\s*{_Q}([^\\"]+){_Q}',
    re.IGNORECASE,
)
TAG_LINE_PATTERN = re.compile(
    rf'{_Q}{TAG_LINE_FIELD}{_Q}\s*:\s*{_Q}([^\\"]+){_Q}',
    re.IGNORECASE,
)
LOW_PRIORITY_PATTERN = re.compile(
    rf'{LOW_PRIORITY_MARKER}{_Q}[,\s]*{_Q}{DURATION_FIELD}{_Q}[:\s]*(-?\d+)'
)
LOCKOUT_PATTERN = re.compile(
    rf'{LOCKOUT_MARKER}{_Q}[,\s]*{_Q}{DURATION_FIELD}{_Q}[:\s]*(-?\d+)'
)


def is_valid_account_id(value: str) -> bool:
    """External account ids are 5-20 digits."""
    return bool(value) and value.isdigit() and 5 <= len(value) <= 20


def is_valid_game_name(value: str) -> bool:
    """Game names are 3-16 characters."""
    return bool(value) and 3 <= len(value) <= 16


@dataclass(frozen=True)
class FieldMatch:
    """A field value and where it was found in the text."""
    value: str
    start: int
    end: int


@dataclass(frozen=True)
class IdentityCandidate:
    """An accountId match paired with the nearest name fields."""
    account_id: FieldMatch
    game_name: Optional[FieldMatch]
    tag_line: Optional[FieldMatch]


class FieldExtractor:
    """Regex-backed access to the fields the engine cares about.

    A structured parser can replace this class as long as it offers the
    same methods.
    """

    def __init__(self, proximity: int = 1000) -> None:
        """
        Args:
            proximity: How far (in characters) from an accountId match the
                name fields may be and still count as the same record.
        """
        self.proximity = proximity

    def account_ids(self, text: str) -> Iterator[FieldMatch]:
        """All accountId occurrences, in file order."""
        for m in ACCOUNT_ID_PATTERN.finditer(text):
            yield FieldMatch(m.group(1), m.start(), m.end())

    def account_id_mentions(self, text: str, account_id: str) -> Iterator[FieldMatch]:
        """Occurrences of one specific accountId, in file order."""
        for match in self.account_ids(text):
            if match.value == account_id:
                yield match

    def identity_candidates_backward(self, text: str) -> Iterator[IdentityCandidate]:
        """Pair each accountId with the name fields of its own record, latest first.

        Name fields are only looked for between the neighbouring accountId
        matches, so an adjacent record's name is never borrowed. Fields after
        the id win over fields before it.
        """
        ids = list(self.account_ids(text))
        for i in range(len(ids) - 1, -1, -1):
            id_match = ids[i]
            lo = max(0, id_match.start - self.proximity)
            if i > 0:
                lo = max(lo, ids[i - 1].end)
            hi = min(len(text), id_match.end + self.proximity)
            if i + 1 < len(ids):
                hi = min(hi, ids[i + 1].start)
            game_name = self._in_record(GAME_NAME_PATTERN, text, lo, hi, id_match)
            # The suffix sits on the same side of the id as the name
            if game_name is not None and game_name.start < id_match.start:
                tag_line = self._in_record(TAG_LINE_PATTERN, text, lo, id_match.start, id_match)
            else:
                tag_line = self._in_record(TAG_LINE_PATTERN, text, id_match.end, hi, id_match)
            yield IdentityCandidate(account_id=id_match, game_name=game_name, tag_line=tag_line)

    def low_priority_millis(self, text: str) -> Optional[int]:
        """Duration of the first low priority marker in text, if any."""
        return self._millis(LOW_PRIORITY_PATTERN, text)

    def lockout_millis(self, text: str) -> Optional[int]:
        """Duration of the first queue lockout marker in text, if any."""
        return self._millis(LOCKOUT_PATTERN, text)

    @staticmethod
    def _millis(pattern: re.Pattern, text: str) -> Optional[int]:
        m = pattern.search(text)
        if not m:
            return None
        try:
            return int(m.group(1))
        except ValueError:
            return None

    @staticmethod
    def _in_record(
        pattern: re.Pattern, text: str, lo: int, hi: int, id_match: FieldMatch
    ) -> Optional[FieldMatch]:
        # First match after the id, else the closest one before it
        m = pattern.search(text, id_match.end, hi)
        if m:
            return FieldMatch(m.group(1).strip(), m.start(), m.end())

        best: Optional[FieldMatch] = None
        for m in pattern.finditer(text, lo, id_match.start):
            best = FieldMatch(m.group(1).strip(), m.start(), m.end())
        return best
