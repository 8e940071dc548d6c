"""
Configuration constants for wifi-transfer.

Discovery naming, wire limits and CLI defaults shared by the send and accept
paths live here so both sides agree on them.
"""

import string

# Discovery Configuration
SERVICE_TYPE = "_http._tcp.local."
NAME_PREFIX = "Local File Transfer: "
# Milliseconds zeroconf may spend resolving a browsed service's records
SERVICE_INFO_TIMEOUT_MS = 3000

# Session Id Configuration
SESSION_ID_ALPHABET = string.ascii_letters + string.digits + "_-"
DEFAULT_SESSION_ID_LENGTH = 5
MAX_SESSION_ID_ATTEMPTS = 5

# Port Configuration
MIN_RANDOM_PORT = 1024
MAX_RANDOM_PORT = 65534

# Wire Configuration
CHUNK_SIZE = 64 * 1024
MAX_HEAD_SIZE = 16 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"
FILE_NAME_HEADER = "X-File-Name"
# Seconds the sender waits for the receiver to hang up after the last byte
SEND_LINGER_TIMEOUT = 5.0
