"""Turn free-form final-vote text into a verdict. Unclear answers never approve."""

import re

from council.models import Vote

FAILED_VOTE_RATIONALE = "failed to vote"

_MARKER_RE = re.compile(r"\bVOTE\**\s*:[\s*[]*(APPROVE|REJECT)D?(?![\w/])", re.IGNORECASE)
_APPROVE_RE = re.compile(r"\b(APPROVE|APPROVED|ACCEPT|ACCEPTED|LGTM)\b", re.IGNORECASE)
_REJECT_RE = re.compile(r"\b(REJECT|REJECTED|DENY|DENIED)\b", re.IGNORECASE)


def parse_vote(text: str) -> bool:
    """Return True only for an unambiguous approval.

    Explicit ``VOTE: APPROVE`` / ``VOTE: [REJECT]`` markers win outright
    (conflicting markers count as a rejection). Otherwise a whole-word match
    from exactly one of the approve/reject lexicons decides. Both, neither,
    or empty input reject.
    """
    if not text:
        return False

    markers = {m.upper() for m in _MARKER_RE.findall(text)}
    if markers:
        return markers == {"APPROVE"}

    approve = _APPROVE_RE.search(text) is not None
    reject = _REJECT_RE.search(text) is not None
    return approve and not reject


def interpret_vote(advisor: str, text: str) -> Vote:
    return Vote(advisor=advisor, approved=parse_vote(text), rationale=text)


def failed_vote(advisor: str) -> Vote:
    return Vote(advisor=advisor, approved=False, rationale=FAILED_VOTE_RATIONALE)
