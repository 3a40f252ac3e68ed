import time


def time_format(seconds: float) -> str:
    """
    Format a duration for log output.
    :param seconds: duration in seconds.
    :return: e.g. "512ms", "3s041ms", "2m05s000ms" or "1h00m01s250ms".
    """
    ms = int((seconds % 1) * 1000)
    s = int(seconds % 60)
    m = int((seconds // 60) % 60)
    h = int(seconds // 3600)
    if seconds < 1:
        return f"{ms}ms"
    elif seconds < 60:
        return f"{s}s{ms:03d}ms"
    elif seconds < 3600:
        return f"{m}m{s:02d}s{ms:03d}ms"
    else:
        return f"{h}h{m:02d}m{s:02d}s{ms:03d}ms"


class Timer:
    """Wall-clock stopwatch started on construction."""

    def __init__(self):
        self.start = time.perf_counter()

    def elapsed_s(self) -> float:
        return time.perf_counter() - self.start

    def elapsed_str(self) -> str:
        return time_format(self.elapsed_s())
