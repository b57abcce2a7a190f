import threading

from backend.app.services.rate_limiter import RATE_LIMITS, RateLimiter, get_client_key


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_sixth_request_in_window_is_denied_with_retry_after():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)

    results = [limiter.check_limit("user:1", max_requests=5, window_s=60, block_duration_s=300) for _ in range(5)]
    assert all(r.allowed for r in results)
    assert [r.remaining for r in results] == [4, 3, 2, 1, 0]

    denied = limiter.check_limit("user:1", max_requests=5, window_s=60, block_duration_s=300)
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.retry_after == 300


def test_blocked_client_stays_blocked_until_block_expires_then_counter_resets():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    for _ in range(6):
        limiter.check_limit("ip:10.0.0.1", max_requests=5, window_s=60, block_duration_s=120)

    clock.advance(100)
    still_blocked = limiter.check_limit("ip:10.0.0.1", max_requests=5, window_s=60, block_duration_s=120)
    assert still_blocked.allowed is False
    assert still_blocked.retry_after == 20

    clock.advance(21)
    after_block = limiter.check_limit("ip:10.0.0.1", max_requests=5, window_s=60, block_duration_s=120)
    assert after_block.allowed is True
    assert after_block.remaining == 4


def test_block_shorter_than_window_still_starts_fresh_window():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    for _ in range(3):
        limiter.check_limit("user:9", max_requests=2, window_s=600, block_duration_s=10)

    clock.advance(11)
    result = limiter.check_limit("user:9", max_requests=2, window_s=600, block_duration_s=10)
    assert result.allowed is True
    assert result.remaining == 1


def test_window_expiry_resets_count():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    for _ in range(3):
        limiter.check_limit("user:2", max_requests=3, window_s=60, block_duration_s=60)

    clock.advance(61)
    result = limiter.check_limit("user:2", max_requests=3, window_s=60, block_duration_s=60)
    assert result.allowed is True
    assert result.remaining == 2
    assert result.reset_time == clock.now + 60


def test_keys_are_independent():
    limiter = RateLimiter(clock=FakeClock())
    for _ in range(2):
        limiter.check_limit("user:a", max_requests=1, window_s=60, block_duration_s=60)
    assert limiter.check_limit("user:a", max_requests=1, window_s=60, block_duration_s=60).allowed is False
    assert limiter.check_limit("user:b", max_requests=1, window_s=60, block_duration_s=60).allowed is True


def test_cleanup_only_drops_fully_expired_entries():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    limiter.check_limit("user:short", max_requests=5, window_s=10, block_duration_s=10)
    for _ in range(2):
        limiter.check_limit("user:blocked", max_requests=1, window_s=10, block_duration_s=500)

    clock.advance(11)
    assert limiter.cleanup() == 1
    assert len(limiter) == 1

    # Cleanup never changes a decision: the blocked client is still blocked.
    assert limiter.check_limit("user:blocked", max_requests=1, window_s=10, block_duration_s=500).allowed is False

    clock.advance(500)
    assert limiter.cleanup() == 1
    assert len(limiter) == 0


def test_named_limit_classes():
    assert RATE_LIMITS["auth"].max_requests == 5
    assert RATE_LIMITS["auth"].block_duration_s == 300
    assert RATE_LIMITS["queue"].max_requests == 20
    assert RATE_LIMITS["queue"].block_duration_s == 120
    assert RATE_LIMITS["general"].max_requests == 100
    assert RATE_LIMITS["registration"].window_s == 300
    assert RATE_LIMITS["registration"].block_duration_s == 900


def test_client_key_prefers_user_id():
    assert get_client_key(42, "1.2.3.4") == "user:42"
    assert get_client_key(None, "1.2.3.4") == "ip:1.2.3.4"
    assert get_client_key(None, None) == "ip:unknown"


def test_concurrent_checks_admit_exactly_the_quota():
    limiter = RateLimiter(clock=FakeClock())
    allowed = []
    lock = threading.Lock()

    def hit():
        r = limiter.check_limit("user:storm", max_requests=20, window_s=60, block_duration_s=60)
        with lock:
            allowed.append(r.allowed)

    threads = [threading.Thread(target=hit) for _ in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert allowed.count(True) == 20
    assert allowed.count(False) == 30


def test_start_and_stop_lifecycle():
    limiter = RateLimiter(cleanup_interval_s=0.05)
    limiter.start()
    assert limiter.running
    limiter.check_limit("user:x")
    limiter.stop()
    assert not limiter.running
    assert len(limiter) == 0
