import errno
import os


def process_exists(pid: int) -> bool:
    """Signal-0 probe; a process we may not signal still exists."""
    if pid <= 0:
        return False

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError as e:
        return e.errno != errno.ESRCH
    return True
