"""
Provisioning progress

One ProvisioningProgress belongs to one workflow run. It is persisted into
``tenant.data["provisioning"]`` only when the percentage moves, so a step
that reports the same value twice costs no write.
"""

from dataclasses import dataclass, field

from orgtenancy.models.tenant import utc_now

# Percentage reached once each step has finished.
STEP_PERCENT = {
    "started": 5,
    "database": 20,
    "domain": 30,
    "migrations": 50,
    "seed": 70,
    "admin": 85,
    "search": 95,
    "completed": 100,
}


@dataclass
class ProvisioningProgress:
    attempt: int = 1
    step: str = "started"
    percent: int = 0
    last_persisted: int = field(default=-1, repr=False)

    def advance(self, step: str) -> bool:
        """Move to ``step``; returns True when the change is worth persisting."""
        self.step = step
        self.percent = max(self.percent, STEP_PERCENT.get(step, self.percent))
        return self.percent != self.last_persisted

    def mark_persisted(self) -> None:
        self.last_persisted = self.percent

    def as_dict(self) -> dict:
        return {
            "attempt": self.attempt,
            "step": self.step,
            "percent": self.percent,
            "updated_at": utc_now().isoformat(),
        }
