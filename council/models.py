"""Pure dataclasses for the council debate pipeline. No logic, no deps."""

from dataclasses import dataclass, field

ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class Message:
    role: str              # "system", "user" or "assistant"
    content: str


@dataclass(frozen=True)
class Task:
    id: str
    description: str
    context: str
    files: tuple[str, ...] = ()
    created_at: float = 0.0


@dataclass(frozen=True)
class Opinion:
    advisor: str
    content: str
    failed: bool = False


@dataclass
class Round:
    number: int
    kind: str              # "opinion" or "deliberation"
    opinions: list[Opinion] = field(default_factory=list)


@dataclass(frozen=True)
class Vote:
    advisor: str
    approved: bool
    rationale: str


@dataclass
class Decision:
    approved: bool
    consensus: float       # approvals / votes cast, in [0, 1]
    votes: list[Vote]
    reasoning: str
    rounds: list[Round] = field(default_factory=list)


@dataclass
class Guidance:
    approved: bool
    feedback: str
    next_steps: list[str] = field(default_factory=list)
