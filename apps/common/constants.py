"""
IT Support Desk Constants

Centralized constants for ticket lifecycle rules, attachment limits and
infrastructure timeouts. Single source of truth for business rules that
span multiple apps.
"""

from typing import Final

# ===============================================================================
# TICKET LIFECYCLE 🎫
# ===============================================================================

TICKET_NUMBER_PREFIX: Final[str] = "TKT"
TICKET_NUMBER_RANDOM_LENGTH: Final[int] = 4          # Random base36 suffix length
TICKET_NUMBER_MAX_ATTEMPTS: Final[int] = 10         # Collision retries before giving up

DEFAULT_TICKET_PRIORITY: Final[str] = "medium"

# Statuses that count as an open workload for a provider
PROVIDER_ACTIVE_STATUSES: Final[tuple[str, ...]] = ("assigned", "in_progress")

# Statuses from which a ticket can still be (re)assigned
ASSIGNABLE_STATUSES: Final[tuple[str, ...]] = ("pending", "assigned", "in_progress")

# Statuses in which the employee may rate the work
RATEABLE_STATUSES: Final[tuple[str, ...]] = ("resolved", "closed")

RATING_MIN_SCORE: Final[int] = 1
RATING_MAX_SCORE: Final[int] = 5

# ===============================================================================
# ATTACHMENTS 📎
# ===============================================================================

MAX_ATTACHMENTS_PER_TICKET: Final[int] = 5           # Maximum attachments per ticket
MAX_ATTACHMENT_SIZE_BYTES: Final[int] = 10_485_760   # 10MB per file
MAX_FILENAME_LENGTH: Final[int] = 255                # Structural - filesystem limit
SNIFF_HEADER_BYTES: Final[int] = 2048                # Bytes read for content sniffing

# ===============================================================================
# PAGINATION 📄
# ===============================================================================

DEFAULT_PAGE_SIZE: Final[int] = 50                   # Ticket listing default
MAX_PAGE_SIZE: Final[int] = 200                      # Maximum allowed page size
DEFAULT_NOTIFICATION_LIMIT: Final[int] = 50          # Notification dropdown default

# ===============================================================================
# INFRASTRUCTURE ⏱️
# ===============================================================================

DATABASE_TIMEOUT_SECONDS: Final[int] = 10            # Matches the mail transport timeout
EMAIL_TIMEOUT_SECONDS: Final[int] = 10
NOTIFICATION_TASK_TIMEOUT_SECONDS: Final[int] = 60
