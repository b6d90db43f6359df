"""mdksys export: lossless project documents.

Public API::

    from mdksys.export import to_json, from_json
    text = to_json(project)
    restored = from_json(text)
"""

from ._document import FORMAT_NAME, FORMAT_VERSION, from_document, from_json, to_document, to_json

__all__ = [
    "FORMAT_NAME",
    "FORMAT_VERSION",
    "from_document",
    "from_json",
    "to_document",
    "to_json",
]
