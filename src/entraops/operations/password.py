"""Bulk password reset operation."""

import logging
import secrets
import string
from typing import Optional

from ..engine.models import OperationResult, WorkItem
from ..engine.processors import normalize_column
from .directory import GraphApi

logger = logging.getLogger(__name__)

PASSWORD_COLUMNS = {"password", "newpassword"}
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 256
SYMBOLS = "!@#$%^&*()-_=+[]{}"


def generate_password(length: int = 16) -> str:
    """Generate a random password satisfying Entra ID complexity rules.

    The result always contains a lowercase letter, an uppercase letter, a
    digit and a symbol.

    Args:
        length: Password length, 8 to 256

    Returns:
        The generated password
    """
    if not MIN_PASSWORD_LENGTH <= length <= MAX_PASSWORD_LENGTH:
        raise ValueError(
            f"Password length must be between {MIN_PASSWORD_LENGTH} and {MAX_PASSWORD_LENGTH}"
        )

    pools = [string.ascii_lowercase, string.ascii_uppercase, string.digits, SYMBOLS]
    alphabet = "".join(pools)
    chars = [secrets.choice(pool) for pool in pools]
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def _password_from_record(item: WorkItem) -> Optional[str]:
    for column, value in item.raw_record.items():
        if normalize_column(column) in PASSWORD_COLUMNS and value and value.strip():
            return value.strip()
    return None


class PasswordResetOperation:
    """Resets the password of one user.

    The password comes from the row's ``Password``/``NewPassword`` column
    when present and is generated otherwise.
    """

    name = "password-reset"
    report_fields = ["NewPassword", "PasswordSource", "ForceChangePassword"]
    # Input password columns are blanked in the audit report
    redacted_columns = sorted(PASSWORD_COLUMNS)

    def __init__(
        self,
        graph: GraphApi,
        force_change: bool = True,
        password_length: int = 16,
        include_password_in_report: bool = True,
    ):
        """Initialize the reset operation.

        Args:
            graph: Graph client
            force_change: Require the user to change the password at next sign-in
            password_length: Length of generated passwords
            include_password_in_report: Write generated passwords to the audit report
        """
        if not MIN_PASSWORD_LENGTH <= password_length <= MAX_PASSWORD_LENGTH:
            raise ValueError(
                f"Password length must be between {MIN_PASSWORD_LENGTH} and {MAX_PASSWORD_LENGTH}"
            )
        self.graph = graph
        self.force_change = force_change
        self.password_length = password_length
        self.include_password_in_report = include_password_in_report

    def __call__(self, item: WorkItem) -> OperationResult:
        password = _password_from_record(item)
        source = "input"
        if password is None:
            password = generate_password(self.password_length)
            source = "generated"

        self.graph.patch(
            f"users/{item.lookup_key}",
            json={
                "passwordProfile": {
                    "password": password,
                    "forceChangePasswordNextSignIn": self.force_change,
                }
            },
        )
        logger.info("Reset password for %s (%s)", item.identifier, source)

        reported = password if (self.include_password_in_report and source == "generated") else ""
        return OperationResult.success(
            item,
            details={
                "NewPassword": reported,
                "PasswordSource": source,
                "ForceChangePassword": self.force_change,
            },
        )
