"""Per-item outcomes for batch sweeps.

Every sweep (confirmation creation, auto-confirm, payout run, fee-charge run,
retries, emails) records one ItemOutcome per entity instead of aborting on the
first failure. A BatchReport is the collected result.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ItemOutcome:
    key: str
    ok: bool
    error: str | None = None

    @classmethod
    def success(cls, key: str) -> "ItemOutcome":
        return cls(key=key, ok=True)

    @classmethod
    def failure(cls, key: str, error: str) -> "ItemOutcome":
        return cls(key=key, ok=False, error=error)


@dataclass
class BatchReport:
    outcomes: list[ItemOutcome] = field(default_factory=list)
    # Items that are neither success nor failure yet (e.g. gateway timeouts)
    deferred: int = 0

    def add(self, outcome: ItemOutcome) -> None:
        self.outcomes.append(outcome)

    def ok(self, key: str) -> None:
        self.add(ItemOutcome.success(key))

    def fail(self, key: str, error: str | BaseException) -> None:
        message = str(error) if isinstance(error, BaseException) else error
        self.add(ItemOutcome.failure(key, message or type(error).__name__))

    def defer(self) -> None:
        self.deferred += 1

    def merge(self, other: "BatchReport") -> "BatchReport":
        self.outcomes.extend(other.outcomes)
        self.deferred += other.deferred
        return self

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def errors(self) -> list[str]:
        return [f"{o.key}: {o.error}" for o in self.outcomes if not o.ok]
