"""Module entrypoint.

Allows:
    python -m mcp_sonicwall_server
"""

from __future__ import annotations

from mcp_sonicwall_server.server.sonicwall_server import main

if __name__ == "__main__":
    main()
