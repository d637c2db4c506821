"""
NetShell Config - transactional configuration over interactive device shells

This package pushes ordered configuration lines to network devices that only
offer a human-oriented CLI over SSH. It includes:

- **Shell sessions** with pty allocation and auto-approval of host keys
- **Stream demultiplexing** of the raw terminal output into prompt-bounded replies
- **Command correlation** with echo stripping and per-call timeouts
- **Vendor transactions** (configure/discard/commit) per device family
- **Concurrent dispatch** with one isolated session per device

Lab devices are reached without host-key verification, with full error
reporting per device.
"""

import logging
import os
from typing import Dict, Tuple

logging.getLogger("netshell_config").addHandler(logging.NullHandler())

__version__ = "0.1.0"

# SSH port
SSH_PORT = 22

# Character that terminates a device prompt
PROMPT_CHAR = "#"

# Timeout settings (seconds)
CONNECTION_TIMEOUT = 30
LOGIN_TIMEOUT = 15
COMMAND_TIMEOUT = 5
COMMIT_TIMEOUT = 10
# Receive timeout once a device has started sending a multi-fragment reply
CONTINUATION_TIMEOUT = 1

# Terminal settings
PTY_TERM = "dumb"
PTY_WIDTH = 100
PTY_HEIGHT = 24
READ_CHUNK_SIZE = 1024

# Upper bound for unmatched output held while waiting for a command echo
MAX_HISTORY_CHARS = 65536

# Default credentials per device kind.
# Override via environment variables, e.g.:
#   NETSHELL_SRL_USER / NETSHELL_SRL_PASS
#   NETSHELL_VR_SROS_USER / NETSHELL_VR_SROS_PASS
DEFAULT_CREDENTIALS: Dict[str, Tuple[str, str]] = {
    "vr-sros": (
        os.environ.get("NETSHELL_VR_SROS_USER", "admin"),
        os.environ.get("NETSHELL_VR_SROS_PASS", "admin"),
    ),
    "srl": (
        os.environ.get("NETSHELL_SRL_USER", "admin"),
        os.environ.get("NETSHELL_SRL_PASS", "admin"),
    ),
}
