"""ekamdash: status dashboard client for the Ekam build tool.

Connects to a running build tool, mirrors its task stream into a status
tree and turns compiler output into structured diagnostics:
  - Diagnostic parser for ``file:line:col: severity: message`` lines
  - Status tree with directory rollup and slot reuse for rebuilt tasks
  - Stream reader with reconnect, backoff and update coalescing
  - ``ekamdash`` CLI (watch / parse)
"""

__version__ = "0.1.0"
__description__ = "Status dashboard client for the Ekam build tool"

from ekamdash.bridge.stream_reader import StreamReader
from ekamdash.core.log_parser import parse_log_line
from ekamdash.core.status_tree import DirectoryNode

__all__ = ["StreamReader", "DirectoryNode", "parse_log_line", "__version__"]
