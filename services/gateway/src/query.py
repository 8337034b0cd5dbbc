"""
Query string encoding for the upstream REST interfaces.

Arrays default to the bracket form (``key[]=a&key[]=b``); a small allow-list
of parameters takes a single comma-joined value instead. Nested mappings are
used for sort specifications (``order[volume]=asc``).
"""

from typing import Any, Iterable, List, Mapping, Optional
from urllib.parse import quote

# Parameters the content provider expects as ``key=a,b`` rather than ``key[]=``
COMMA_JOINED_PARAMS = frozenset({"manga"})


def _encode(value: Any) -> str:
    if isinstance(value, bool):
        value = "true" if value else "false"
    return quote(str(value), safe="")


def encode_query(
    params: Optional[Mapping[str, Any]],
    comma_joined: Iterable[str] = COMMA_JOINED_PARAMS,
) -> str:
    """
    Encode a parameter mapping into a query string.

    Args:
        params: Parameter name -> scalar, sequence, or nested mapping.
            Encoded in insertion order.
        comma_joined: Names whose sequences are sent as one comma-joined value

    Returns:
        The query string without a leading ``?``; empty for no parameters
    """
    if not params:
        return ""

    joined = set(comma_joined)
    parts: List[str] = []

    for key, value in params.items():
        if value is None:
            continue

        if isinstance(value, Mapping):
            for sub_key, sub_value in value.items():
                if sub_value is None:
                    continue
                parts.append(f"{_encode(f'{key}[{sub_key}]')}={_encode(sub_value)}")
        elif isinstance(value, (list, tuple)):
            if key in joined:
                parts.append(f"{_encode(key)}={_encode(','.join(str(v) for v in value))}")
            else:
                for item in value:
                    parts.append(f"{_encode(f'{key}[]')}={_encode(item)}")
        else:
            parts.append(f"{_encode(key)}={_encode(value)}")

    return "&".join(parts)
