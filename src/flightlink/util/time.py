import time


def unix_ms(t_unix: float) -> int:
    return int(round(t_unix * 1000.0))


def now_unix() -> float:
    return time.time()
