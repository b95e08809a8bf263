"""Lenient decoding of the metadata string stored with an endpoint."""

import json
from typing import Any, Dict, Union


def parse_endpoint_metadata(metadata: Any) -> Union[Dict[str, Any], str, None]:
    """
    Decode stored endpoint metadata.

    A string that looks like a JSON object is decoded into a mapping; any other
    string (including malformed JSON) is returned unchanged. Mappings and None
    pass through.
    """
    if metadata is None or isinstance(metadata, dict):
        return metadata
    if not isinstance(metadata, str):
        return str(metadata)

    if len(metadata) > 2 and metadata.startswith("{"):
        try:
            decoded = json.loads(metadata)
        except ValueError:
            return metadata
        if isinstance(decoded, dict):
            return decoded
    return metadata
