"""Exceptions raised by the graph core."""


class GraphIntegrityError(Exception):
    """A graph violates node/edge integrity (duplicate ids, dangling edges, cycles)."""

    def __init__(self, message: str, subject_id: str | None = None):
        super().__init__(message)
        self.subject_id = subject_id
