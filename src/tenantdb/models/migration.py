"""Migration status values shared by the aggregate, the runner and the status API."""

from enum import Enum


class MigrationStatus(str, Enum):
    """Provisioning state of one service's database for one tenant.

    ``PARTIALLY_PROVISIONED`` only describes a tenant as a whole and is set
    by reconciliation across services, never by a single service.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIALLY_PROVISIONED = "partially_provisioned"

    @property
    def is_terminal(self) -> bool:
        return self in (MigrationStatus.COMPLETED, MigrationStatus.FAILED)

    @classmethod
    def parse(cls, value: "str | MigrationStatus") -> "MigrationStatus":
        """Parse a status name such as ``InProgress``, ``in-progress`` or ``in_progress``.

        Raises:
            ValueError: If the name is not a known status
        """
        if isinstance(value, MigrationStatus):
            return value
        normalized = "".join(ch for ch in value.strip().lower() if ch.isalnum())
        for member in cls:
            if member.value.replace("_", "") == normalized:
                return member
        raise ValueError(f"Unknown migration status: {value!r}")
