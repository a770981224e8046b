"""llamart

On-device conversational art assistant core: knowledge retrieval,
conversation memory, prompt assembly and streamed generation sessions.
"""

from __future__ import annotations

__version__ = "0.1.0"
