import logging
from typing import List

from .errors import CalendarUntrustworthy, SourceError
from .events import DueEntry

logger = logging.getLogger(__name__)


def verify(entries: List[DueEntry], chain) -> List[DueEntry]:
    """
    Re-read each kitty's gestation flag and drop entries that are no longer pregnant.

    Order is preserved. If any single read fails the whole batch is untrusted:
    the aggregate count can't be reasoned about from a partial sample.
    """
    surviving = []
    for entry in entries:
        try:
            gestating = chain.is_gestating(entry.subject_id)
        except SourceError as e:
            raise CalendarUntrustworthy("unverifiable_subject", subject_id=entry.subject_id) from e
        if gestating:
            surviving.append(entry)
        else:
            logger.warning("We thought kitty %d was pregnant but it's not, removing...", entry.subject_id)
    return surviving
