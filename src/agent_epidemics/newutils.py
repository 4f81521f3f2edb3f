import time

__all__ = ["TimingStats", "validate"]


class TimingContext:
    def __init__(self, label: str, stats: "_TimingStats", parent: dict) -> None:
        self.label = label
        self.stats = stats
        self.parent = parent
        self.children = {}
        self.ncalls = 0
        self.elapsed = 0
        self.start = 0
        self.end = 0

        return

    def __enter__(self):
        self.ncalls += 1
        self.stats._enter(self)
        self.start = time.perf_counter_ns()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end = time.perf_counter_ns()
        self.elapsed += self.end - self.start
        self.stats._exit(self)

        return

    @property
    def inclusive(self) -> int:
        return self.elapsed

    @property
    def exclusive(self) -> int:
        excl = self.elapsed
        for child in self.children.values():
            excl -= child.elapsed

        return excl


class _TimingStats:
    """Nested wall-clock timers keyed by label, reported as an indented tree."""

    def __init__(self) -> None:
        self.frozen = False
        self.context = {}
        self.root = self.start("root")
        self.root.__enter__()

        return

    def start(self, label: str) -> TimingContext:
        if self.frozen:
            raise RuntimeError(f"Cannot start timer '{label}' after TimingStats has been frozen.")

        if label not in self.context:
            self.context[label] = TimingContext(label, self, self.context)

        return self.context[label]

    def _enter(self, context: TimingContext) -> None:
        self.context = context.children
        return

    def _exit(self, context: TimingContext) -> None:
        assert self.context is context.children
        self.context = context.parent
        return

    def freeze(self) -> None:
        if self.frozen:
            raise RuntimeError("TimingStats is already frozen.")
        self.root.__exit__(None, None, None)
        self.frozen = True

        return

    def to_string(self, scale: str = "ms") -> str:
        if not self.frozen:
            raise RuntimeError("TimingStats must be frozen before reporting.")

        scale_factors = {
            "ns": 1,
            "us": 1e3,
            "µs": 1e3,
            "ms": 1e6,
            "s": 1e9,
        }
        if scale not in scale_factors:
            raise ValueError(f"Invalid scale '{scale}'. Valid options: {list(scale_factors.keys())}")
        factor = scale_factors[scale]

        lines = []

        def _recurse(node: TimingContext, depth: int) -> None:
            indent = "    " * depth
            tot_time = node.elapsed / factor
            avg_time = node.elapsed / node.ncalls / factor if node.ncalls > 0 else 0
            exc_time = node.exclusive / factor
            lines.append(
                f"{indent}{node.label}: {node.ncalls} calls, total {tot_time:.3f} {scale}, avg {avg_time:.3f} {scale}, excl {exc_time:.3f} {scale}"
            )
            for child in node.children.values():
                _recurse(child, depth + 1)

            return

        _recurse(self.root, 0)
        return "\n".join(lines)


TimingStats = _TimingStats()


def validate(pre, post):
    """Run `pre(tick)` / `post(tick)` around a component step when `model.validating` is set."""

    def decorator(func):
        def wrapper(self, tick: int, *args, **kwargs):
            if pre and self.model.validating:
                with TimingStats.start(pre.__name__):
                    getattr(self, pre.__name__)(tick)
            result = func(self, tick, *args, **kwargs)
            if post and self.model.validating:
                with TimingStats.start(post.__name__):
                    getattr(self, post.__name__)(tick)
            return result

        return wrapper

    return decorator
