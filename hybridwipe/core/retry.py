import time
import random
import logging
from botocore.exceptions import ClientError

from hybridwipe.core.errors import CleanupError

THROTTLING_CODES = ('Throttling', 'ThrottlingException', 'RequestLimitExceeded', 'TooManyRequestsException')

POLL_INTERVAL = 5
MAX_CONSECUTIVE_POLL_ERRORS = 3


def retry_delete(operation, description, max_attempts=8):
    """Run operation, retrying only when AWS throttles the call.

    Any other ClientError is raised to the caller untouched so it can decide
    whether the code means the resource is already gone.
    """
    base_delay = 1.2
    for attempt in range(max_attempts):
        try:
            return operation()
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code not in THROTTLING_CODES:
                raise
            delay = min(base_delay * (2 ** attempt) * random.uniform(0.5, 1.5), 60)
            logging.warning(f"{description} throttled ({code}); retrying in {delay:.2f}s")
            time.sleep(delay)
    raise CleanupError(f"Max retries ({max_attempts}) exceeded for {description}", operation=description)


def poll_until(check, description, timeout, interval=POLL_INTERVAL,
               max_consecutive_errors=MAX_CONSECUTIVE_POLL_ERRORS):
    """Call check() until it returns True or timeout seconds pass.

    ClientErrors from check count against a consecutive-error budget that is
    reset by every successful call; exhausting it fails the poll.
    """
    deadline = time.monotonic() + timeout
    consecutive_errors = 0
    while True:
        try:
            if check():
                return
            consecutive_errors = 0
        except ClientError as e:
            consecutive_errors += 1
            logging.debug(f"{description}: poll error {consecutive_errors}/{max_consecutive_errors}: {e}")
            if consecutive_errors > max_consecutive_errors:
                raise CleanupError(f"{description}: {e}", operation=description) from e
        if time.monotonic() >= deadline:
            raise CleanupError(f"timed out after {timeout}s waiting for {description}", operation=description)
        time.sleep(interval)
