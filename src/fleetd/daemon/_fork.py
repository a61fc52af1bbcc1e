"""Forking helpers shared by every worker role."""

import os
import signal
import sys
import traceback
from collections.abc import Callable, Iterable

import anyio

from fleetd.enums import Role

from ._channel import Channel


def fork_worker(
    role: Role,
    main: Callable[[], int | None],
    *,
    close: Iterable[Channel] = (),
) -> int:
    """Fork a child that runs main and exits with its status.

    The child closes every channel in close before running main and never
    returns into the caller's stack. SIGINT is ignored in the child so that
    a terminal interrupt reaches only the root, which then asks each worker
    to terminate.

    Args:
        role: Role of the child, exported as FLEETD_ROLE for diagnostics.
        main: Worker entry point. Its return value is the exit code.
        close: Parent-owned channels the child must not hold.

    Returns:
        The child pid (in the parent only).
    """
    to_close = list(close)
    # Buffered output would otherwise be written twice.
    sys.stdout.flush()
    sys.stderr.flush()
    pid = os.fork()
    if pid:
        return pid

    code = 1
    try:
        for channel in to_close:
            channel.close()
        signal.signal(signal.SIGINT, signal.SIG_IGN)
        os.environ["FLEETD_ROLE"] = role.value
        code = main() or 0
    except SystemExit as e:
        code = e.code if isinstance(e.code, int) else 1
    except Exception:  # noqa: BLE001
        traceback.print_exc()
    finally:
        sys.stdout.flush()
        sys.stderr.flush()
        os._exit(code)


def idle() -> int:
    """Block until a signal terminates the process."""
    anyio.run(anyio.sleep_forever)
    return 0
