# core/models.py
from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Literal
import logging

logger = logging.getLogger(__name__)

VerdictKind = Literal["COMPLIANT", "NON_COMPLIANT", "SKIPPED", "ERROR"]
ProviderState = Literal["RUNNING", "PRESENT", "ABSENT", "UNAVAILABLE"]
FollowUpStatus = Literal["NOT_SHOWN", "SUBMITTED", "CANCELLED"]

VERDICT_KINDS: tuple[str, ...] = ("COMPLIANT", "NON_COMPLIANT", "SKIPPED", "ERROR")

SKIPPED_DETAIL = "Skipped by configuration."


@dataclass(frozen=True)
class Verdict:
    kind: VerdictKind
    detail: str
    reason_required: bool = False
    evidence: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if self.kind not in VERDICT_KINDS:
            raise ValueError(f"Unknown verdict kind: {self.kind!r}")
        if not isinstance(self.detail, str) or not self.detail.strip():
            raise ValueError("Verdict detail must be a non-empty string")

    @classmethod
    def compliant(cls, detail: str, **evidence: Any) -> "Verdict":
        return cls("COMPLIANT", detail, False, evidence)

    @classmethod
    def non_compliant(cls, detail: str, reason_required: bool = True, **evidence: Any) -> "Verdict":
        return cls("NON_COMPLIANT", detail, reason_required, evidence)

    @classmethod
    def skipped(cls, detail: str = SKIPPED_DETAIL) -> "Verdict":
        return cls("SKIPPED", detail)

    @classmethod
    def error(cls, detail: str, **evidence: Any) -> "Verdict":
        return cls("ERROR", detail, False, evidence)


@dataclass(frozen=True)
class ProviderResult:
    """
    Normalized answer from a provider adapter.

      - RUNNING     resource present and in a running state
      - PRESENT     resource present (not running, or no notion of running)
      - ABSENT      resource does not exist; a normal answer, not a fault
      - UNAVAILABLE the query itself failed (access denied, timeout, tool missing)
    """
    state: ProviderState
    value: Any = None
    error: str | None = None

    @property
    def is_running(self) -> bool:
        return self.state == "RUNNING"

    @property
    def is_present(self) -> bool:
        return self.state in ("RUNNING", "PRESENT")

    @property
    def is_unavailable(self) -> bool:
        return self.state == "UNAVAILABLE"

    @classmethod
    def running(cls, value: Any = None) -> "ProviderResult":
        return cls("RUNNING", value)

    @classmethod
    def present(cls, value: Any = None) -> "ProviderResult":
        return cls("PRESENT", value)

    @classmethod
    def absent(cls) -> "ProviderResult":
        return cls("ABSENT")

    @classmethod
    def unavailable(cls, error: str) -> "ProviderResult":
        return cls("UNAVAILABLE", None, error or "unknown provider failure")


@dataclass(frozen=True)
class CheckDefinition:
    name: str
    enabled: bool
    evaluate: Callable[[], Verdict]

    def run(self) -> Verdict:
        """
        Produce exactly one Verdict for this check.

        Disabled checks short-circuit before any provider is touched. Any fault
        escaping evaluate() is contained here and becomes an ERROR verdict.
        """
        if not self.enabled:
            return Verdict.skipped()
        try:
            verdict = self.evaluate()
        except Exception as e:
            logger.exception("Check %r raised; recording as error", self.name)
            return Verdict.error(f"Check failed unexpectedly: {type(e).__name__}: {e}")
        if not isinstance(verdict, Verdict):
            return Verdict.error(f"Check returned {type(verdict).__name__} instead of a verdict")
        return verdict


class ComplianceReport(Mapping):
    """Ordered, read-only mapping of check name -> Verdict for one run."""

    def __init__(
        self,
        entries: list[tuple[str, Verdict]] | tuple[tuple[str, Verdict], ...],
        meta: dict[str, Any] | None = None,
        host: dict[str, Any] | None = None,
    ) -> None:
        seen: set[str] = set()
        for name, _ in entries:
            if name in seen:
                raise ValueError(f"Duplicate check name in report: {name!r}")
            seen.add(name)
        self._entries = tuple(entries)
        self._index = {name: verdict for name, verdict in self._entries}
        self._meta = dict(meta or {})
        self._host = dict(host or {})

    def __getitem__(self, name: str) -> Verdict:
        return self._index[name]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ComplianceReport({list(self._entries)!r})"

    @property
    def meta(self) -> dict[str, Any]:
        return dict(self._meta)

    @property
    def host(self) -> dict[str, Any]:
        return dict(self._host)

    def entries(self) -> tuple[tuple[str, Verdict], ...]:
        return self._entries

    def counts(self) -> dict[str, int]:
        totals = {kind: 0 for kind in VERDICT_KINDS}
        for _, verdict in self._entries:
            totals[verdict.kind] += 1
        return totals

    def outcomes(self) -> list[tuple[str, str, str]]:
        """(name, kind, detail) tuples in report order."""
        return [(name, v.kind, v.detail) for name, v in self._entries]


@dataclass(frozen=True)
class FollowUpOutcome:
    status: FollowUpStatus
    answers: dict[str, str] = field(default_factory=dict)

    @property
    def collected(self) -> bool:
        return self.status == "SUBMITTED"
