"""
Centralized timeout configuration for store and origin calls.
Values are in seconds.
"""

import os

class TIMEOUTS:
    """Centralized timeout values in seconds"""

    # Single request to the upstream search API
    origin_request = float(os.getenv("TIMEOUT_ORIGIN_REQUEST", "10"))

    # Establishing the store connection
    store_connect = float(os.getenv("TIMEOUT_STORE_CONNECT", "5"))

    # Any single store command
    store_socket = float(os.getenv("TIMEOUT_STORE_SOCKET", "5"))
