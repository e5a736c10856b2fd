"""
ServerWalker - Recursive walk of a server-mounted source folder.
"""

from typing import List

from .picture_record import DataSource
from .local_walker import LocalWalker


class ServerWalker(LocalWalker):
    """
    Walks a folder mounted on the server.

    Always recursive and never excludes sub-trees; otherwise identical to the
    local walk, fingerprint fast path included.
    """

    kind = 'server'

    def _is_recursive(self, source: DataSource) -> bool:
        return True

    def _excluded_for(self, source: DataSource) -> List[str]:
        return []
