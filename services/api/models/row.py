# services/api/models/row.py
from __future__ import annotations

import random
import string
import time

# Free-text columns of an observation row, in display order.
ROW_TEXT_FIELDS = (
    "srno",
    "part_name",
    "op_number",
    "observation",
    "action_plan",
    "responsibility",
    "remarks",
)

# Fields the free-text search looks at (op_number is not searched).
SEARCHABLE_FIELDS = (
    "srno",
    "part_name",
    "observation",
    "action_plan",
    "responsibility",
    "remarks",
)

EDITABLE_FIELDS = ROW_TEXT_FIELDS + ("status",)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_row_id() -> str:
    """
    `local-<epoch ms>-<9 random base36 chars>`.

    The random suffix keeps two sessions that add a row in the same
    millisecond from colliding.
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"local-{int(time.time() * 1000)}-{suffix}"
