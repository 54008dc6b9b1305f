import time
import uuid


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def generate_connection_id() -> str:
    return f"conn_{uuid.uuid4().hex[:12]}"
