from __future__ import annotations


class NameConflictError(Exception):
    """
    A resolved name is already stored under a different token id.

    Raised by store adapters when the real-name unique index rejects a write.
    Callers recover by re-reading the row that owns the name.
    """

    def __init__(self, name: str, token_id: str) -> None:
        super().__init__(f"name {name!r} already stored for a different token than {token_id}")
        self.name = name
        self.token_id = token_id
