import time
from itertools import count
from typing import Dict, List

from pydantic_factory.utils.logger import get_logger

profile_logger = get_logger(__name__)


class Profile():
    """
    timing of one top-level call, keyed by the reference path leading to
    each created factory:

    PostFactory                 : count: 1, avg: 0.9ms, max: 0.9ms, min: 0.9ms
    PostFactory.blog_id         : count: 1, avg: 0.6ms, max: 0.6ms, min: 0.6ms
    PostFactory.blog_id.user_id : count: 1, avg: 0.4ms, max: 0.4ms, min: 0.4ms
    """
    def __init__(self):
        self.full_path_timer: Dict[str, Timer] = {}

    def get_timer(self, path: List[str]) -> 'Timer':
        key = '.'.join(path)
        timer = self.full_path_timer.get(key)
        if timer is None:
            timer = self.full_path_timer[key] = Timer(key)
        return timer

    def __repr__(self) -> str:
        if not self.full_path_timer:
            return ''
        width = max(len(key) for key in self.full_path_timer)
        return '\n'.join(
            f'{key.ljust(width)}: {timer}'
            for key, timer in sorted(self.full_path_timer.items()))

    def report(self):
        profile_logger.debug('\n' + repr(self))


class Timer():
    """durations in ms, one record per start/end pair"""
    def __init__(self, name: str):
        self.name = name
        self.records: List[float] = []
        self.timeset: Dict[int, float] = {}
        self._ids = count()

    def start(self) -> int:
        tid = next(self._ids)
        self.timeset[tid] = time.perf_counter()
        return tid

    def end(self, tid: int):
        started = self.timeset.pop(tid)
        self.records.append((time.perf_counter() - started) * 1000)

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def average(self) -> float:
        return sum(self.records) / len(self.records) if self.records else 0

    @property
    def max(self) -> float:
        return max(self.records, default=0)

    @property
    def min(self) -> float:
        return min(self.records, default=0)

    def __repr__(self) -> str:
        return f'count: {self.count}, avg: {self.average:.1f}ms, max: {self.max:.1f}ms, min: {self.min:.1f}ms'
