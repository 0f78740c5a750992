"""CLI logging setup: plain %(message)s output on stdout, secrets redacted."""

import logging
import sys

from stackdock.redact import SecretRedactingFilter

AUDIT_LOGGER = "stackdock.audit"


def setup_cli_logging(verbose=False):
    """Configure the root logger for CLI commands.

    Output matches print(). The redaction filter sits on the handler, so
    records from any logger (boto3 included at DEBUG) are scrubbed.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)

    # botocore is chatty at DEBUG and may echo request parameters
    for name in ("botocore", "boto3", "urllib3", "s3transfer"):
        logging.getLogger(name).setLevel(logging.WARNING)
