import logging
import time

import requests
from web3.exceptions import Web3Exception

from .errors import SourceError

logger = logging.getLogger(__name__)

# web3 6 reports JSON-RPC error responses as plain ValueError
TRANSIENT_ERRORS = (requests.RequestException, Web3Exception, OSError, ValueError)


def with_retries(fn, operation, retries=3, backoff=1.5, sleep=time.sleep):
    attempt = 0
    while True:
        try:
            return fn()
        except TRANSIENT_ERRORS as e:
            attempt += 1
            if attempt > retries:
                logger.error("%s failed after %d attempts: %s. Giving up.", operation, attempt, e)
                raise SourceError(operation, e) from e
            delay = backoff ** attempt
            logger.warning("%s failed (%s), retrying in %.1fs [%d/%d]", operation, e, delay, attempt, retries)
            sleep(delay)
