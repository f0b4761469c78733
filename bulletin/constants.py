"""
Centralized magic constants organized by domain.

All hardcoded numbers/strings used throughout the codebase should be
defined here with documentation explaining their purpose.
"""


class AuditDefaults:
    """Audit trail constants."""

    SYSTEM_USER_TYPE = "system"         # user_type for sweeps and repairs
    ADMIN_USER_TYPE = "admin"
    SYSTEM_IDENTIFIER = "system"        # Shown in descriptions when no actor email
    CLI_IDENTIFIER = "cli"              # Actor identifier for maintenance CLI runs
    HISTORY_LIMIT = 200                 # Max records returned for one entity's history


class ArchiveDefaults:
    """Defaults for archival sweeps."""

    SWEEP_BATCH_SIZE = 500              # Rows locked per query; a sweep loops until none are left
    POSTGRES_LOCK_NOT_AVAILABLE = "55P03"  # SQLSTATE for lock_timeout / NOWAIT failures


class ReadRetry:
    """Transparent retry for idempotent reads."""

    MAX_ATTEMPTS = 3
    MIN_WAIT_SECONDS = 0.1
    MAX_WAIT_SECONDS = 1.0
