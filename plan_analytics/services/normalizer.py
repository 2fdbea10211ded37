"""
Record Normalizer — the boundary between untrusted rows and the engine.

Storage and import collaborators hand over whatever they have: partial
dictionaries, numbers typed as strings, spreadsheet serial dates. This
module turns any of that into a complete Activity. It never raises.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any, Optional

from pydantic import ValidationError

from plan_analytics.models import Activity
from plan_analytics.parsing import parse_date

logger = logging.getLogger(__name__)


def normalize_activity(
    raw: Any,
    reference: Optional[date] = None,
) -> Activity:
    """
    Coerce a raw record into a canonical Activity.

    Accepts camelCase or snake_case keys. An Activity is re-validated so
    its invariants hold even if a caller mutated it. Anything that is not
    a mapping is treated as an empty record.
    """
    if isinstance(raw, Activity):
        data = raw.model_dump()
    elif isinstance(raw, Mapping):
        data = dict(raw)
    else:
        data = {}

    try:
        activity = Activity.model_validate(data)
    except ValidationError as e:
        # Field validators coerce everything; this only trips on
        # exotic objects whose __str__ fails.
        logger.warning(f"Discarding unparseable activity record: {e}")
        activity = Activity()

    if activity.last_modified_date is None and reference is not None:
        activity = activity.model_copy(
            update={"last_modified_date": parse_date(reference)}
        )
    return activity


def normalize_activities(
    records: Optional[Iterable[Any]],
    reference: Optional[date] = None,
) -> list[Activity]:
    return [normalize_activity(record, reference) for record in records or []]
