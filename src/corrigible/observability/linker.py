"""CorrigibleEventLinker: isolated event namespace for corrigible.

All corrigible subscribers register here. Separate from any other
pyventus usage in the process.
"""

from __future__ import annotations

from pyventus.events import EventLinker


class CorrigibleEventLinker(EventLinker):
    """Isolated event namespace for corrigible observability."""

    pass
